"""Entity approval workflow engine.

This module provides the state machine registry, the transition executor,
the escalation queue, the audit trail and the read projections for sellers,
products and return requests.
"""

from .states import (
    Action,
    EntityType,
    SellerStatus,
    ProductStatus,
    ReturnStatus,
    StateDefinition,
    TransitionRule,
    StateMachineRegistry,
    DEFAULT_REGISTRY,
    allowed_transition,
    resolve_target,
    get_state_definition,
)
from .outcomes import (
    Applied,
    Escalated,
    Dismissed,
    Rejected,
    ErrorKind,
    BulkResult,
    BulkStatus,
    TransitionOutcome,
)
from .store import EntitySnapshot, EntityStore
from .audit import AuditTrail, HistoryReplayError
from .executor import AvailableAction, TransitionExecutor
from .escalation import EscalationQueue
from .bulk import BulkOperationCoordinator
from .query import Page, QueryProjection

__all__ = [
    # States
    "Action",
    "EntityType",
    "SellerStatus",
    "ProductStatus",
    "ReturnStatus",
    "StateDefinition",
    "TransitionRule",
    "StateMachineRegistry",
    "DEFAULT_REGISTRY",
    "allowed_transition",
    "resolve_target",
    "get_state_definition",
    # Outcomes
    "Applied",
    "Escalated",
    "Dismissed",
    "Rejected",
    "ErrorKind",
    "BulkResult",
    "BulkStatus",
    "TransitionOutcome",
    # Services
    "EntitySnapshot",
    "EntityStore",
    "AuditTrail",
    "HistoryReplayError",
    "AvailableAction",
    "TransitionExecutor",
    "EscalationQueue",
    "BulkOperationCoordinator",
    "Page",
    "QueryProjection",
]
