"""Tests for transition guards and escalation predicates."""

from decimal import Decimal
from types import SimpleNamespace

from marketplace.core.rbac import Role
from marketplace.core.workflow import guards

from tests.factories import make_actor, make_super_admin


def _return(item_price=100, quantity=1):
    return SimpleNamespace(domain_fields={"item_price": item_price, "quantity": quantity})


class TestCommissionGuard:

    def test_commission_within_range(self):
        assert guards.check_commission(None, {"commission_percentage": 0}, None) is None
        assert guards.check_commission(None, {"commission_percentage": "12.5"}, None) is None
        assert guards.check_commission(None, {"commission_percentage": 100}, None) is None

    def test_commission_required(self):
        assert "required" in guards.check_commission(None, {}, None)
        assert "required" in guards.check_commission(None, {"commission_percentage": "abc"}, None)
        assert "required" in guards.check_commission(None, {"commission_percentage": True}, None)

    def test_commission_out_of_range(self):
        assert guards.check_commission(None, {"commission_percentage": -1}, None) is not None
        assert guards.check_commission(None, {"commission_percentage": 100.01}, None) is not None


class TestRefundGuard:

    def test_max_refundable(self):
        assert guards.max_refundable(_return(25, 3)) == Decimal("75")
        assert guards.max_refundable(SimpleNamespace(domain_fields={})) is None

    def test_refund_within_paid_amount(self):
        assert guards.check_refund_amount(_return(50, 2), {"refund_amount": 100}, None) is None
        assert guards.check_refund_amount(_return(50, 2), {"refund_amount": "0.01"}, None) is None

    def test_refund_must_be_positive(self):
        assert guards.check_refund_amount(_return(), {"refund_amount": 0}, None) is not None
        assert guards.check_refund_amount(_return(), {"refund_amount": -5}, None) is not None

    def test_refund_cannot_exceed_price(self):
        message = guards.check_refund_amount(_return(50, 1), {"refund_amount": 50.5}, None)
        assert "exceeds" in message

    def test_refund_without_price(self):
        entity = SimpleNamespace(domain_fields={})
        assert guards.check_refund_amount(entity, {"refund_amount": 10}, None) is not None


class TestPickupGuard:

    def test_pickup_date_required(self):
        assert guards.check_pickup_date(None, {}, None) is not None
        assert guards.check_pickup_date(None, {"pickup_date": "2026-11-02"}, None) is None


class TestEscalationPredicate:

    def test_super_admin_never_escalates(self):
        assert guards.requires_super_admin(make_super_admin()) is False

    def test_everyone_else_escalates(self):
        assert guards.requires_super_admin(make_actor(Role.ADMIN)) is True
        assert guards.requires_super_admin(make_actor(Role.SELLER)) is True
