"""Governed entity model.

One row per seller, product listing or return request. Domain fields beyond
the lifecycle columns live in ``domain_fields``.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, JSON, Uuid, Index
from sqlalchemy.orm import relationship

from marketplace.db.base import Base


class Entity(Base):
    """
    A business record whose status is governed by the workflow engine.

    ``status`` and ``version`` only change through the transition executor's
    compare-and-swap update.
    """
    __tablename__ = "entities"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    entity_type = Column(String(20), nullable=False, index=True)  # seller, product, return

    # Workflow state
    status = Column(String(50), nullable=False, index=True)
    version = Column(Integer, nullable=False, default=1)

    # Searchable descriptors
    name = Column(String(255), nullable=True)
    category = Column(String(100), nullable=True, index=True)

    # Everything else the marketplace stores about the record
    domain_fields = Column(JSON, nullable=False, default=dict)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    audit_entries = relationship(
        "AuditEntry",
        order_by="AuditEntry.id",
        viewonly=True,
    )

    __table_args__ = (
        Index("ix_entities_type_status", "entity_type", "status"),
    )

    def __repr__(self) -> str:
        return f"<Entity {self.entity_type}:{self.id} [{self.status} v{self.version}]>"
