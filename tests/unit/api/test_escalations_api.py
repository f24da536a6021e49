"""Tests for the escalation queue endpoints."""

import uuid

import pytest

from marketplace.core.rbac import PermissionKey
from marketplace.core.workflow import TransitionExecutor
from marketplace.db.models import Entity, EscalationRequest

from tests.factories import auth_headers, create_return, make_admin, make_super_admin


@pytest.fixture
def returns_admin():
    return make_admin(PermissionKey.RETURNS)


@pytest.fixture
def escalated(db_session, returns_admin):
    entity = create_return(db_session, status="PICKED_UP", item_price=80)
    outcome = TransitionExecutor(db_session).execute(
        entity.id, "refund", returns_admin, {"refund_amount": 80}
    )
    db_session.commit()
    return entity, outcome


def _reload(db_session, model, row_id):
    db_session.expire_all()
    return db_session.query(model).filter(model.id == row_id).one()


class TestListEscalations:

    def test_lists_pending(self, client, escalated, returns_admin):
        entity, outcome = escalated

        response = client.get("/api/escalations", headers=auth_headers(returns_admin))

        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["id"] == str(outcome.escalation_id)
        assert data[0]["entity_id"] == str(entity.id)
        assert data[0]["to_status"] == "REFUNDED"
        assert data[0]["payload"]["refund_amount"] == 80
        assert data[0]["requested_by_id"] == returns_admin.id

    def test_filter_by_entity_type(self, client, escalated):
        headers = auth_headers(make_super_admin())

        assert len(client.get("/api/escalations?entity_type=return", headers=headers).json()) == 1
        assert client.get("/api/escalations?entity_type=seller", headers=headers).json() == []

    def test_get_single(self, client, escalated):
        _, outcome = escalated
        headers = auth_headers(make_super_admin())

        response = client.get(f"/api/escalations/{outcome.escalation_id}", headers=headers)
        assert response.status_code == 200
        assert response.json()["status"] == "pending"

        assert client.get(f"/api/escalations/{uuid.uuid4()}", headers=headers).status_code == 404

    def test_requires_authentication(self, client):
        assert client.get("/api/escalations").status_code == 401


class TestConfirmEscalation:

    def test_super_admin_confirms(self, client, db_session, escalated):
        entity, outcome = escalated
        confirmer = make_super_admin()

        response = client.post(
            f"/api/escalations/{outcome.escalation_id}/confirm",
            headers=auth_headers(confirmer),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "REFUNDED"
        assert data["version"] == 2
        assert data["audit_entry_id"]

        assert _reload(db_session, Entity, entity.id).status == "REFUNDED"
        request = _reload(db_session, EscalationRequest, outcome.escalation_id)
        assert request.status == "confirmed"
        assert request.resolved_by_id == confirmer.id

    def test_regular_admin_cannot_confirm(self, client, db_session, escalated, returns_admin):
        entity, outcome = escalated

        response = client.post(
            f"/api/escalations/{outcome.escalation_id}/confirm",
            headers=auth_headers(returns_admin),
        )

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "permission_denied"
        assert _reload(db_session, Entity, entity.id).status == "PICKED_UP"

    def test_second_confirm_conflicts(self, client, escalated):
        _, outcome = escalated
        url = f"/api/escalations/{outcome.escalation_id}/confirm"

        assert client.post(url, headers=auth_headers(make_super_admin())).status_code == 200

        response = client.post(url, headers=auth_headers(make_super_admin()))
        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "already_resolved"

    def test_unknown_escalation(self, client):
        response = client.post(
            f"/api/escalations/{uuid.uuid4()}/confirm",
            headers=auth_headers(make_super_admin()),
        )
        assert response.status_code == 404


class TestDismissEscalation:

    def test_dismiss_with_reason(self, client, db_session, escalated):
        entity, outcome = escalated

        response = client.post(
            f"/api/escalations/{outcome.escalation_id}/dismiss",
            json={"reason": "Item was damaged by the customer"},
            headers=auth_headers(make_super_admin()),
        )

        assert response.status_code == 200
        assert response.json() == {
            "escalation_id": str(outcome.escalation_id),
            "entity_id": str(entity.id),
            "status": "dismissed",
        }
        request = _reload(db_session, EscalationRequest, outcome.escalation_id)
        assert request.status == "dismissed"
        assert request.resolution_reason == "Item was damaged by the customer"
        assert _reload(db_session, Entity, entity.id).status == "PICKED_UP"

    def test_dismiss_without_body(self, client, escalated):
        _, outcome = escalated

        response = client.post(
            f"/api/escalations/{outcome.escalation_id}/dismiss",
            headers=auth_headers(make_super_admin()),
        )
        assert response.status_code == 200

    def test_dismissed_request_cannot_be_confirmed(self, client, escalated):
        _, outcome = escalated
        headers = auth_headers(make_super_admin())

        client.post(f"/api/escalations/{outcome.escalation_id}/dismiss", headers=headers)
        response = client.post(f"/api/escalations/{outcome.escalation_id}/confirm", headers=headers)

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "already_resolved"
