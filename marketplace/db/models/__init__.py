"""Database models for the marketplace workflow engine."""

from marketplace.db.models.entity import Entity
from marketplace.db.models.audit import AuditEntry, AuditKind, AuditImmutableError
from marketplace.db.models.escalation import EscalationRequest, EscalationStatus

__all__ = [
    "Entity",
    "AuditEntry",
    "AuditKind",
    "AuditImmutableError",
    "EscalationRequest",
    "EscalationStatus",
]
