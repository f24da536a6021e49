"""Tests for the permission gate."""

import asyncio

import pytest
from fastapi import HTTPException

from marketplace.core.rbac import (
    Actor,
    PermissionGate,
    PermissionKey,
    Role,
    effective_permissions,
    require_permission,
    sanitize_permissions,
)
from marketplace.core.rbac.permissions import is_valid_permission, parse_permission_map
from marketplace.core.workflow import DEFAULT_REGISTRY, EntityType

from tests.factories import make_actor, make_admin, make_super_admin


@pytest.fixture
def gate():
    return PermissionGate()


def _rule(entity_type, from_state, to_state):
    return DEFAULT_REGISTRY.allowed_transition(entity_type, from_state, to_state)


class TestPermissionModel:

    def test_is_valid_permission(self):
        assert is_valid_permission("sellers")
        assert is_valid_permission("returns")
        assert not is_valid_permission("audit_logs")

    def test_parse_permission_map(self):
        parsed = parse_permission_map({"sellers": True, "products": "yes", "bogus": True, "returns": False})
        assert parsed == {
            PermissionKey.SELLERS: True,
            PermissionKey.PRODUCTS: False,
            PermissionKey.RETURNS: False,
        }

    def test_actor_from_claims(self):
        actor = Actor.from_claims({"sub": "a-1", "role": "admin", "permissions": {"sellers": True}})
        assert actor.id == "a-1"
        assert actor.role == Role.ADMIN
        assert actor.permissions == {PermissionKey.SELLERS: True}

    def test_actor_from_claims_clears_restricted_keys(self):
        claims = {"sub": "a-2", "role": "admin", "permissions": {"users": True, "sellers": True}}
        actor = Actor.from_claims(claims)
        assert actor.permissions == {PermissionKey.USERS: False, PermissionKey.SELLERS: True}

        root = Actor.from_claims({**claims, "role": "super_admin"})
        assert root.permissions[PermissionKey.USERS] is True

    def test_actor_from_claims_requires_subject_and_role(self):
        with pytest.raises(ValueError):
            Actor.from_claims({"role": "admin"})
        with pytest.raises(ValueError):
            Actor.from_claims({"sub": "a-1", "role": "overlord"})


class TestAuthorize:

    def test_super_admin_always_allowed(self, gate):
        actor = make_super_admin()
        assert gate.authorize(actor, _rule(EntityType.SELLER, "UNDER_REVIEW", "APPROVED")).allowed
        assert gate.authorize(actor, _rule(EntityType.SELLER, "BLOCKED", "APPROVED")).allowed

    def test_admin_with_key_allowed(self, gate):
        actor = make_admin(PermissionKey.SELLERS)
        assert gate.authorize(actor, _rule(EntityType.SELLER, "UNDER_REVIEW", "APPROVED")).allowed

    def test_admin_without_key_denied(self, gate):
        actor = make_admin(PermissionKey.PRODUCTS)
        result = gate.authorize(actor, _rule(EntityType.SELLER, "UNDER_REVIEW", "APPROVED"))
        assert not result.allowed
        assert "sellers" in result.reason

    def test_admin_with_false_key_denied(self, gate):
        actor = make_actor(Role.ADMIN, {PermissionKey.SELLERS: False})
        assert not gate.authorize(actor, _rule(EntityType.SELLER, "UNDER_REVIEW", "APPROVED")).allowed

    def test_restricted_key_never_effective_for_admin(self, gate):
        actor = make_admin(PermissionKey.USERS, PermissionKey.SELLERS)
        result = gate.authorize(actor, _rule(EntityType.SELLER, "BLOCKED", "APPROVED"))
        assert not result.allowed
        assert "restricted" in result.reason

    @pytest.mark.parametrize("role", [Role.USER, Role.SELLER])
    def test_non_admin_roles_denied(self, gate, role):
        actor = make_actor(role, {key: True for key in PermissionKey})
        assert not gate.authorize(actor, _rule(EntityType.PRODUCT, "DRAFT", "UNDER_REVIEW")).allowed


class TestEffectivePermissions:

    def test_super_admin_holds_everything(self):
        assert effective_permissions(make_super_admin()) == frozenset(PermissionKey)

    def test_admin_restricted_key_stripped(self):
        actor = make_admin(PermissionKey.USERS, PermissionKey.RETURNS)
        assert effective_permissions(actor) == frozenset([PermissionKey.RETURNS])

    def test_non_admin_holds_nothing(self):
        actor = make_actor(Role.SELLER, {PermissionKey.PRODUCTS: True})
        assert effective_permissions(actor) == frozenset()

    def test_sanitize_permissions(self):
        raw = {PermissionKey.USERS: True, PermissionKey.ORDERS: True}
        assert sanitize_permissions(Role.ADMIN, raw) == {
            PermissionKey.USERS: False,
            PermissionKey.ORDERS: True,
        }
        assert sanitize_permissions(Role.SUPER_ADMIN, raw) == raw


class TestRequirePermissionDecorator:

    @staticmethod
    def _endpoint(*keys):
        @require_permission(*keys)
        async def endpoint(current_actor=None):
            return "ok"
        return endpoint

    def test_missing_actor_is_unauthorized(self):
        with pytest.raises(HTTPException) as exc:
            asyncio.run(self._endpoint()(current_actor=None))
        assert exc.value.status_code == 401

    def test_non_admin_forbidden(self):
        with pytest.raises(HTTPException) as exc:
            asyncio.run(self._endpoint()(current_actor=make_actor(Role.USER)))
        assert exc.value.status_code == 403

    def test_admin_needs_one_of_the_keys(self):
        endpoint = self._endpoint(PermissionKey.SELLERS, PermissionKey.PRODUCTS)
        assert asyncio.run(endpoint(current_actor=make_admin(PermissionKey.PRODUCTS))) == "ok"
        with pytest.raises(HTTPException) as exc:
            asyncio.run(endpoint(current_actor=make_admin(PermissionKey.ORDERS)))
        assert exc.value.status_code == 403

    def test_no_keys_means_any_admin(self):
        assert asyncio.run(self._endpoint()(current_actor=make_admin())) == "ok"
