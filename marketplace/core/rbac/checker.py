"""Permission gate for workflow transitions.

Authorization is derived here and only here. A permission map arriving from
a client or a token is advisory input; the gate decides which keys are
actually effective.
"""

from functools import wraps
from typing import Callable, NamedTuple, Optional, Union

from fastapi import HTTPException, status

from .actor import Actor
from .permissions import PermissionKey, Role, RESTRICTED_PERMISSIONS

ADMIN_ROLES = frozenset([Role.ADMIN, Role.SUPER_ADMIN])


class Authorization(NamedTuple):
    """Outcome of a permission check."""
    allowed: bool
    reason: Optional[str] = None


def effective_permissions(actor: Actor) -> frozenset[PermissionKey]:
    """Resolve the permission keys that are actually in force for an actor."""
    if actor.role == Role.SUPER_ADMIN:
        return frozenset(PermissionKey)
    if actor.role != Role.ADMIN:
        return frozenset()
    return frozenset(
        key for key, granted in actor.permissions.items()
        if granted is True and key not in RESTRICTED_PERMISSIONS
    )


class PermissionGate:
    """Checks an actor against the permission a transition rule requires."""

    def has_permission(self, actor: Actor, permission: Union[str, PermissionKey]) -> bool:
        key = PermissionKey(permission)
        return key in effective_permissions(actor)

    def authorize(self, actor: Actor, rule) -> Authorization:
        """Authorize an actor for a transition rule.

        SUPER_ADMIN is always allowed. ADMIN needs the rule's permission set to
        ``True`` and never passes on a restricted key. Any other role is
        denied.
        """
        if actor.role == Role.SUPER_ADMIN:
            return Authorization(True)

        required = rule.required_permission
        if actor.role != Role.ADMIN:
            return Authorization(False, f"Role {actor.role.value} cannot perform workflow actions")

        if required in RESTRICTED_PERMISSIONS:
            return Authorization(False, f"Permission {required.value} is restricted to super admins")

        if actor.permissions.get(required) is not True:
            return Authorization(False, f"Permission denied: requires {required.value}")

        return Authorization(True)


def require_permission(*permissions: Union[str, PermissionKey]):
    """
    Decorator factory for FastAPI endpoints requiring specific permissions.

    The endpoint must receive the acting principal as ``current_actor``.
    With no permissions given, any admin or super admin passes.

    Usage:
        @router.get("/audit-logs")
        @require_permission(PermissionKey.SELLERS)
        async def list_audit_logs(current_actor: Actor = Depends(get_current_actor)):
            ...
    """
    keys = [PermissionKey(p) for p in permissions]

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            current_actor = kwargs.get("current_actor")
            if not current_actor:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Authentication required"
                )

            if current_actor.role not in ADMIN_ROLES:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Admin access required"
                )

            granted = effective_permissions(current_actor)
            if keys and not any(key in granted for key in keys):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Insufficient permissions. Required: {', '.join(k.value for k in keys)}"
                )

            return await func(*args, **kwargs)

        return wrapper
    return decorator
