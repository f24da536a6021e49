"""Escalation request model.

Holds transitions an actor may request but not finalize.
"""

import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Text, Uuid, Index, text
from sqlalchemy.orm import relationship

from marketplace.db.base import Base


class EscalationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DISMISSED = "dismissed"


class EscalationRequest(Base):
    """
    A transition waiting for a more privileged confirmer.

    The entity keeps its status until the request is confirmed.
    """
    __tablename__ = "escalation_requests"
    __table_args__ = (
        # One pending request per proposed transition
        Index(
            "uq_escalation_requests_pending",
            "entity_id",
            "action",
            "from_status",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    entity_id = Column(Uuid, ForeignKey("entities.id"), nullable=False, index=True)
    entity_type = Column(String(20), nullable=False, index=True)

    # Proposed transition
    action = Column(String(50), nullable=False)
    from_status = Column(String(50), nullable=False)
    to_status = Column(String(50), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    # Request tracking
    requested_by_id = Column(String(64), nullable=False)
    requested_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Resolution
    status = Column(String(20), nullable=False, default=EscalationStatus.PENDING.value, index=True)
    resolved_by_id = Column(String(64), nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    resolution_reason = Column(Text, nullable=True)

    entity = relationship("Entity")

    @property
    def is_pending(self) -> bool:
        return self.status == EscalationStatus.PENDING.value

    def __repr__(self) -> str:
        return f"<EscalationRequest {self.action} on {self.entity_id} [{self.status}]>"
