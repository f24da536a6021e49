"""Tests for bulk transitions."""

import uuid

from marketplace.core.rbac import PermissionKey
from marketplace.core.workflow import BulkOperationCoordinator, BulkStatus, EntityType, ErrorKind
from marketplace.db.models import AuditEntry, Entity

from tests.factories import create_product, create_return, make_admin, make_super_admin


def _status(db_session, entity):
    return db_session.query(Entity.status).filter(Entity.id == entity.id).scalar()


class TestBulkOperations:

    def test_all_succeed(self, db_session):
        products = [create_product(db_session, status="UNDER_REVIEW") for _ in range(3)]

        result = BulkOperationCoordinator(db_session).execute_bulk(
            [p.id for p in products], "approve", make_admin(PermissionKey.PRODUCTS)
        )

        assert result.outcome == BulkStatus.SUCCEEDED
        assert result.succeeded == [p.id for p in products]
        assert all(_status(db_session, p) == "APPROVED" for p in products)

    def test_failures_do_not_undo_successes(self, db_session):
        ready = create_product(db_session, status="UNDER_REVIEW")
        draft = create_product(db_session)
        missing = uuid.uuid4()

        result = BulkOperationCoordinator(db_session).execute_bulk(
            [ready.id, draft.id, missing], "approve", make_super_admin()
        )

        assert result.outcome == BulkStatus.PARTIAL
        assert result.succeeded == [ready.id]
        assert result.failed == {
            draft.id: ErrorKind.INVALID_TRANSITION,
            missing: ErrorKind.NOT_FOUND,
        }
        assert _status(db_session, ready) == "APPROVED"
        assert _status(db_session, draft) == "DRAFT"

    def test_all_fail(self, db_session):
        products = [create_product(db_session, status="UNDER_REVIEW") for _ in range(2)]

        result = BulkOperationCoordinator(db_session).execute_bulk(
            [p.id for p in products], "approve", make_admin(PermissionKey.SELLERS)
        )

        assert result.outcome == BulkStatus.FAILED
        assert set(result.failed.values()) == {ErrorKind.PERMISSION_DENIED}
        assert result.messages[products[0].id]

    def test_duplicate_ids_run_once(self, db_session):
        product = create_product(db_session, status="UNDER_REVIEW")

        result = BulkOperationCoordinator(db_session).execute_bulk(
            [product.id, product.id, product.id], "approve", make_super_admin()
        )

        assert result.succeeded == [product.id]
        assert result.total == 1
        assert db_session.query(AuditEntry).filter(AuditEntry.entity_id == product.id).count() == 1

    def test_escalations_reported_separately(self, db_session):
        returns = [create_return(db_session, status="PICKED_UP", item_price=20) for _ in range(2)]

        result = BulkOperationCoordinator(db_session).execute_bulk(
            [r.id for r in returns], "refund", make_admin(PermissionKey.RETURNS), {"refund_amount": 20}
        )

        assert result.outcome == BulkStatus.SUCCEEDED
        assert result.succeeded == []
        assert set(result.escalated) == {r.id for r in returns}
        assert all(_status(db_session, r) == "PICKED_UP" for r in returns)

    def test_entity_type_scopes_ids(self, db_session):
        product = create_product(db_session, status="UNDER_REVIEW")

        result = BulkOperationCoordinator(db_session).execute_bulk(
            [product.id], "approve", make_super_admin(), entity_type=EntityType.SELLER
        )

        assert result.failed == {product.id: ErrorKind.NOT_FOUND}
