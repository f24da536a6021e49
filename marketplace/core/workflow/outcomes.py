"""Typed results returned by the workflow engine.

Every branch of a transition request ends in one of these values; the core
never raises for an expected refusal.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union
from uuid import UUID


class ErrorKind(str, Enum):
    """Why a workflow request was refused."""

    NOT_FOUND = "not_found"                                 # Unknown entity or escalation
    INVALID_TRANSITION = "invalid_transition"               # No registered edge
    PERMISSION_DENIED = "permission_denied"                 # Gate refused the actor
    VALIDATION_FAILED = "validation_failed"                 # Guard refused the payload
    CONCURRENT_MODIFICATION = "concurrent_modification"     # Lost the compare-and-swap
    ALREADY_RESOLVED = "already_resolved"                   # Escalation acted on twice


@dataclass(frozen=True)
class Applied:
    """The entity now sits in ``status`` at ``version``."""
    entity_id: UUID
    status: str
    version: int
    audit_entry_id: Optional[int] = None

    @property
    def idempotent(self) -> bool:
        """True when nothing was written because the entity was already there."""
        return self.audit_entry_id is None


@dataclass(frozen=True)
class Escalated:
    """The transition awaits confirmation; the entity is unchanged."""
    entity_id: UUID
    escalation_id: UUID
    status: str
    version: int


@dataclass(frozen=True)
class Dismissed:
    """An escalation was closed without applying its transition."""
    escalation_id: UUID
    entity_id: UUID


@dataclass(frozen=True)
class Rejected:
    """The request was refused; nothing was written."""
    error: ErrorKind
    message: str = ""


TransitionOutcome = Union[Applied, Escalated, Rejected]


class BulkStatus(str, Enum):
    SUCCEEDED = "succeeded"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class BulkResult:
    """Per-entity results of a bulk transition."""
    succeeded: List[UUID] = field(default_factory=list)
    escalated: Dict[UUID, UUID] = field(default_factory=dict)
    failed: Dict[UUID, ErrorKind] = field(default_factory=dict)
    messages: Dict[UUID, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.escalated) + len(self.failed)

    @property
    def outcome(self) -> BulkStatus:
        if not self.failed:
            return BulkStatus.SUCCEEDED
        if len(self.failed) == self.total:
            return BulkStatus.FAILED
        return BulkStatus.PARTIAL
