"""Business guards and escalation predicates attached to transition rules.

A guard receives ``(entity, payload, actor)`` and returns ``None`` when the
transition may proceed, or a human readable message describing why the
payload was refused. An escalation predicate receives the actor and returns
``True`` when the transition must be confirmed by someone more privileged.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from marketplace.core.rbac.permissions import Role

MIN_COMMISSION = Decimal("0")
MAX_COMMISSION = Decimal("100")


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def check_commission(entity, payload: Mapping[str, Any], actor) -> Optional[str]:
    """Seller approval carries a commission percentage between 0 and 100."""
    commission = _to_decimal(payload.get("commission_percentage"))
    if commission is None:
        return "commission_percentage is required to approve a seller"
    if not MIN_COMMISSION <= commission <= MAX_COMMISSION:
        return f"commission_percentage must be between {MIN_COMMISSION} and {MAX_COMMISSION}"
    return None


def max_refundable(entity) -> Optional[Decimal]:
    """Item price times quantity of the returned order line."""
    fields = entity.domain_fields or {}
    price = _to_decimal(fields.get("item_price"))
    if price is None:
        return None
    quantity = _to_decimal(fields.get("quantity", 1))
    if quantity is None:
        return None
    return price * quantity


def check_refund_amount(entity, payload: Mapping[str, Any], actor) -> Optional[str]:
    """A refund is positive and never exceeds what the customer paid."""
    amount = _to_decimal(payload.get("refund_amount"))
    if amount is None:
        return "refund_amount is required"
    if amount <= 0:
        return "refund_amount must be positive"

    limit = max_refundable(entity)
    if limit is None:
        return "Return request has no item price to refund against"
    if amount > limit:
        return f"refund_amount {amount} exceeds the original item price {limit}"
    return None


def check_pickup_date(entity, payload: Mapping[str, Any], actor) -> Optional[str]:
    if not payload.get("pickup_date"):
        return "pickup_date is required to schedule a pickup"
    return None


def requires_super_admin(actor) -> bool:
    """Escalate unless the actor is a super admin."""
    return actor.role != Role.SUPER_ADMIN
