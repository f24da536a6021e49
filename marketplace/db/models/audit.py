"""Workflow audit trail model.

This table is APPEND-ONLY. The ORM refuses to update or delete rows and the
Postgres migration installs triggers that do the same at the database level.
Entries are ordered by their integer ``id``, which is assigned at insert
time while the entity row is still locked by the compare-and-swap update.
"""

from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, DateTime, Integer, JSON, ForeignKey, Text, Uuid, Index, event, text
from sqlalchemy.orm import relationship

from marketplace.db.base import Base


class AuditKind(str, Enum):
    """What an audit entry records."""
    APPLIED = "applied"         # Status changed, version bumped
    ESCALATED = "escalated"     # Transition requested, awaiting confirmation
    DISMISSED = "dismissed"     # Escalation closed without applying


class AuditImmutableError(Exception):
    """Raised when code tries to modify or delete an audit entry."""


class AuditEntry(Base):
    """
    One line of an entity's authoritative history.

    Replaying the ``applied`` entries of an entity, in id order, from its
    initial status reproduces its current status.
    """
    __tablename__ = "audit_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_id = Column(Uuid, ForeignKey("entities.id"), nullable=False, index=True)
    entity_type = Column(String(20), nullable=False, index=True)
    kind = Column(String(20), nullable=False, default=AuditKind.APPLIED.value, index=True)

    # Transition details
    from_status = Column(String(50), nullable=False)
    to_status = Column(String(50), nullable=False)
    action = Column(String(50), nullable=False, index=True)

    # Actors: actor_id performed or requested; requested_by_id is set when a
    # confirmer applies someone else's escalated request
    actor_id = Column(String(64), nullable=False, index=True)
    requested_by_id = Column(String(64), nullable=True)
    escalation_id = Column(Uuid, nullable=True, index=True)

    # Why
    reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    payload = Column(JSON, nullable=False, default=dict)

    occurred_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    resulting_version = Column(Integer, nullable=False)

    entity = relationship("Entity", viewonly=True)

    __table_args__ = (
        # At most one applied entry per entity version
        Index(
            "uq_audit_entries_entity_version",
            "entity_id",
            "resulting_version",
            unique=True,
            postgresql_where=text("kind = 'applied'"),
            sqlite_where=text("kind = 'applied'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<AuditEntry {self.kind} {self.from_status} -> {self.to_status} v{self.resulting_version}>"


@event.listens_for(AuditEntry, "before_update")
def _prevent_update(mapper, connection, target):
    raise AuditImmutableError(f"Audit entries are immutable. Record ID: {target.id}")


@event.listens_for(AuditEntry, "before_delete")
def _prevent_delete(mapper, connection, target):
    raise AuditImmutableError(f"Audit entries cannot be deleted. Record ID: {target.id}")
