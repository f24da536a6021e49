"""Entity lifecycle states and the transition registry.

Seller:

    DRAFT ──submit──► PENDING_VERIFICATION ──start_review──► UNDER_REVIEW
                              │                                   │
                              └──────────approve/reject───────────┤
                                                                  ▼
                                                     APPROVED  /  REJECTED
    APPROVED ──suspend──► SUSPENDED ──activate──► APPROVED
    SUSPENDED ──block──► BLOCKED ──unblock (super admin)──► APPROVED

Product:

    DRAFT ──submit──► UNDER_REVIEW ──approve──► APPROVED ──block──► BLOCKED
                          ▲      └──reject───► REJECTED
                          └──────resubmit─────────┘

Return:

    REQUESTED ──approve──► APPROVED ──schedule_pickup──► PICKUP_SCHEDULED
        └──reject──► REJECTED                                  │
                                                          mark_picked_up
                                                               ▼
    COMPLETED ◄──complete── REFUNDED / REPLACED ◄──refund/replace── PICKED_UP

The registry fails closed: a (from, to) pair that is not listed here is not
a legal transition. Terminal states are immutable apart from the edges
listed here (seller unblock, product resubmit).
"""

from enum import Enum
from typing import Callable, Dict, FrozenSet, Iterable, NamedTuple, Optional, Tuple, Type

from marketplace.core.rbac.permissions import PermissionKey

from . import guards


class EntityType(str, Enum):
    """Kinds of governed business records."""

    SELLER = "seller"
    PRODUCT = "product"
    RETURN = "return"


class SellerStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SUSPENDED = "SUSPENDED"
    BLOCKED = "BLOCKED"


class ProductStatus(str, Enum):
    DRAFT = "DRAFT"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    BLOCKED = "BLOCKED"


class ReturnStatus(str, Enum):
    REQUESTED = "REQUESTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PICKUP_SCHEDULED = "PICKUP_SCHEDULED"
    PICKED_UP = "PICKED_UP"
    REFUNDED = "REFUNDED"
    REPLACED = "REPLACED"
    COMPLETED = "COMPLETED"


class Action(str, Enum):
    """Named actions callers invoke; each resolves to a target status."""

    SUBMIT = "submit"
    START_REVIEW = "start_review"
    APPROVE = "approve"
    REJECT = "reject"
    SUSPEND = "suspend"
    ACTIVATE = "activate"
    BLOCK = "block"
    UNBLOCK = "unblock"
    RESUBMIT = "resubmit"
    SCHEDULE_PICKUP = "schedule_pickup"
    MARK_PICKED_UP = "mark_picked_up"
    REFUND = "refund"
    REPLACE = "replace"
    COMPLETE = "complete"


STATUS_ENUMS: Dict[EntityType, Type[Enum]] = {
    EntityType.SELLER: SellerStatus,
    EntityType.PRODUCT: ProductStatus,
    EntityType.RETURN: ReturnStatus,
}


class StateDefinition(NamedTuple):
    """States, initial state and terminal states of one entity type."""
    states: FrozenSet[Enum]
    initial: Enum
    terminal: FrozenSet[Enum]


class TransitionRule(NamedTuple):
    """Defines a legal state transition."""
    entity_type: EntityType
    from_state: Enum
    to_state: Enum
    action: Action
    required_permission: PermissionKey
    guard: Optional[Callable] = None
    escalate_if: Optional[Callable] = None
    requires_reason: bool = False
    reason_field: Optional[str] = None
    record_fields: Tuple[str, ...] = ()


STATE_DEFINITIONS: Dict[EntityType, StateDefinition] = {
    EntityType.SELLER: StateDefinition(
        states=frozenset(SellerStatus),
        initial=SellerStatus.DRAFT,
        terminal=frozenset([SellerStatus.REJECTED, SellerStatus.BLOCKED]),
    ),
    EntityType.PRODUCT: StateDefinition(
        states=frozenset(ProductStatus),
        initial=ProductStatus.DRAFT,
        terminal=frozenset([ProductStatus.REJECTED, ProductStatus.BLOCKED]),
    ),
    EntityType.RETURN: StateDefinition(
        states=frozenset(ReturnStatus),
        initial=ReturnStatus.REQUESTED,
        terminal=frozenset([ReturnStatus.REJECTED, ReturnStatus.COMPLETED]),
    ),
}


_S = EntityType.SELLER
_P = EntityType.PRODUCT
_R = EntityType.RETURN

TRANSITION_RULES: list[TransitionRule] = [
    # Seller onboarding
    TransitionRule(_S, SellerStatus.DRAFT, SellerStatus.PENDING_VERIFICATION, Action.SUBMIT,
                   PermissionKey.SELLERS),
    TransitionRule(_S, SellerStatus.PENDING_VERIFICATION, SellerStatus.UNDER_REVIEW, Action.START_REVIEW,
                   PermissionKey.SELLERS),
    TransitionRule(_S, SellerStatus.PENDING_VERIFICATION, SellerStatus.APPROVED, Action.APPROVE,
                   PermissionKey.SELLERS, guard=guards.check_commission,
                   record_fields=("commission_percentage",)),
    TransitionRule(_S, SellerStatus.PENDING_VERIFICATION, SellerStatus.REJECTED, Action.REJECT,
                   PermissionKey.SELLERS, requires_reason=True, reason_field="rejection_reason"),
    TransitionRule(_S, SellerStatus.UNDER_REVIEW, SellerStatus.APPROVED, Action.APPROVE,
                   PermissionKey.SELLERS, guard=guards.check_commission,
                   record_fields=("commission_percentage",)),
    TransitionRule(_S, SellerStatus.UNDER_REVIEW, SellerStatus.REJECTED, Action.REJECT,
                   PermissionKey.SELLERS, requires_reason=True, reason_field="rejection_reason"),

    # Seller account moderation
    TransitionRule(_S, SellerStatus.APPROVED, SellerStatus.SUSPENDED, Action.SUSPEND,
                   PermissionKey.SELLERS, requires_reason=True,
                   reason_field="suspension_reason", record_fields=("freeze_payouts",)),
    TransitionRule(_S, SellerStatus.SUSPENDED, SellerStatus.APPROVED, Action.ACTIVATE,
                   PermissionKey.SELLERS),
    TransitionRule(_S, SellerStatus.SUSPENDED, SellerStatus.BLOCKED, Action.BLOCK,
                   PermissionKey.SELLERS, requires_reason=True, reason_field="suspension_reason"),
    TransitionRule(_S, SellerStatus.BLOCKED, SellerStatus.APPROVED, Action.UNBLOCK,
                   PermissionKey.USERS),

    # Product listing moderation
    TransitionRule(_P, ProductStatus.DRAFT, ProductStatus.UNDER_REVIEW, Action.SUBMIT,
                   PermissionKey.PRODUCTS),
    TransitionRule(_P, ProductStatus.UNDER_REVIEW, ProductStatus.APPROVED, Action.APPROVE,
                   PermissionKey.PRODUCTS),
    TransitionRule(_P, ProductStatus.UNDER_REVIEW, ProductStatus.REJECTED, Action.REJECT,
                   PermissionKey.PRODUCTS, requires_reason=True, reason_field="rejection_reason"),
    TransitionRule(_P, ProductStatus.REJECTED, ProductStatus.UNDER_REVIEW, Action.RESUBMIT,
                   PermissionKey.PRODUCTS),
    TransitionRule(_P, ProductStatus.APPROVED, ProductStatus.BLOCKED, Action.BLOCK,
                   PermissionKey.PRODUCTS, requires_reason=True, reason_field="block_reason"),

    # Return handling
    TransitionRule(_R, ReturnStatus.REQUESTED, ReturnStatus.APPROVED, Action.APPROVE,
                   PermissionKey.RETURNS, record_fields=("admin_note",)),
    TransitionRule(_R, ReturnStatus.REQUESTED, ReturnStatus.REJECTED, Action.REJECT,
                   PermissionKey.RETURNS, requires_reason=True, reason_field="rejection_reason"),
    TransitionRule(_R, ReturnStatus.APPROVED, ReturnStatus.PICKUP_SCHEDULED, Action.SCHEDULE_PICKUP,
                   PermissionKey.RETURNS, guard=guards.check_pickup_date, record_fields=("pickup_date",)),
    TransitionRule(_R, ReturnStatus.PICKUP_SCHEDULED, ReturnStatus.PICKED_UP, Action.MARK_PICKED_UP,
                   PermissionKey.RETURNS),
    TransitionRule(_R, ReturnStatus.PICKED_UP, ReturnStatus.REFUNDED, Action.REFUND,
                   PermissionKey.RETURNS, guard=guards.check_refund_amount,
                   escalate_if=guards.requires_super_admin,
                   record_fields=("refund_amount", "restore_inventory", "admin_note")),
    TransitionRule(_R, ReturnStatus.PICKED_UP, ReturnStatus.REPLACED, Action.REPLACE,
                   PermissionKey.RETURNS, record_fields=("admin_note",)),
    TransitionRule(_R, ReturnStatus.REFUNDED, ReturnStatus.COMPLETED, Action.COMPLETE,
                   PermissionKey.RETURNS),
    TransitionRule(_R, ReturnStatus.REPLACED, ReturnStatus.COMPLETED, Action.COMPLETE,
                   PermissionKey.RETURNS),
]


class StateMachineRegistry:
    """Lookup tables over a set of transition rules.

    Construction validates the rule set: every state must belong to its
    entity type, a (type, from, to) triple may appear only once, and an
    action name must resolve to a single target status per entity type.
    """

    def __init__(
        self,
        rules: Iterable[TransitionRule],
        definitions: Dict[EntityType, StateDefinition],
    ):
        self.definitions = dict(definitions)
        self._rules: Dict[tuple, TransitionRule] = {}
        self._targets: Dict[tuple, Enum] = {}
        self._outgoing: Dict[tuple, list[TransitionRule]] = {}

        for rule in rules:
            definition = self.definitions.get(rule.entity_type)
            if definition is None:
                raise ValueError(f"No state definition for {rule.entity_type.value}")
            for state in (rule.from_state, rule.to_state):
                if state not in definition.states:
                    raise ValueError(f"{state!r} is not a {rule.entity_type.value} status")

            key = (rule.entity_type, rule.from_state, rule.to_state)
            if key in self._rules:
                raise ValueError(
                    f"Ambiguous transition {rule.entity_type.value}: "
                    f"{rule.from_state.value} -> {rule.to_state.value}"
                )
            self._rules[key] = rule

            action_key = (rule.entity_type, rule.action)
            existing = self._targets.get(action_key)
            if existing is not None and existing != rule.to_state:
                raise ValueError(
                    f"Action {rule.action.value} resolves to both {existing.value} "
                    f"and {rule.to_state.value} for {rule.entity_type.value}"
                )
            self._targets[action_key] = rule.to_state
            self._outgoing.setdefault((rule.entity_type, rule.from_state), []).append(rule)

    def allowed_transition(self, entity_type: EntityType, from_state, to_state) -> Optional[TransitionRule]:
        """Get the rule for a (from, to) pair, or None if the pair is illegal."""
        try:
            from_state = self.parse_status(entity_type, from_state)
            to_state = self.parse_status(entity_type, to_state)
        except ValueError:
            return None
        return self._rules.get((entity_type, from_state, to_state))

    def resolve_target(self, entity_type: EntityType, action) -> Optional[Enum]:
        """Get the target status an action leads to for an entity type."""
        try:
            action = Action(action)
        except ValueError:
            return None
        return self._targets.get((entity_type, action))

    def outgoing(self, entity_type: EntityType, from_state) -> list[TransitionRule]:
        """Get all rules leaving a status."""
        from_state = self.parse_status(entity_type, from_state)
        return list(self._outgoing.get((entity_type, from_state), []))

    def actions_for(self, entity_type: EntityType) -> list[Action]:
        """Get every action registered for an entity type."""
        return sorted(
            {action for (etype, action) in self._targets if etype == entity_type},
            key=lambda a: a.value,
        )

    def definition(self, entity_type: EntityType) -> StateDefinition:
        return self.definitions[entity_type]

    def initial_state(self, entity_type: EntityType) -> Enum:
        return self.definitions[entity_type].initial

    def is_terminal(self, entity_type: EntityType, state) -> bool:
        return self.parse_status(entity_type, state) in self.definitions[entity_type].terminal

    @staticmethod
    def parse_status(entity_type: EntityType, value) -> Enum:
        """Coerce a raw status string into the entity type's status enum.

        Raises:
            ValueError: If the value is not a status of that entity type
        """
        enum_cls = STATUS_ENUMS[entity_type]
        if isinstance(value, enum_cls):
            return value
        if isinstance(value, Enum):
            value = value.value
        return enum_cls(value)


DEFAULT_REGISTRY = StateMachineRegistry(TRANSITION_RULES, STATE_DEFINITIONS)


def allowed_transition(entity_type: EntityType, from_state, to_state) -> Optional[TransitionRule]:
    """Check the default registry for a legal transition."""
    return DEFAULT_REGISTRY.allowed_transition(entity_type, from_state, to_state)


def resolve_target(entity_type: EntityType, action) -> Optional[Enum]:
    """Get the target status for an action in the default registry."""
    return DEFAULT_REGISTRY.resolve_target(entity_type, action)


def get_state_definition(entity_type: EntityType) -> StateDefinition:
    """Get the state definition for an entity type."""
    return STATE_DEFINITIONS[entity_type]
