"""RBAC (Role-Based Access Control) for the workflow engine.

This module defines roles, permission keys, the acting principal and the
permission gate every transition passes through.
"""

from .permissions import PermissionKey, Role, RESTRICTED_PERMISSIONS, sanitize_permissions
from .actor import Actor
from .checker import (
    Authorization,
    PermissionGate,
    effective_permissions,
    require_permission,
)

__all__ = [
    "PermissionKey",
    "Role",
    "RESTRICTED_PERMISSIONS",
    "Actor",
    "Authorization",
    "PermissionGate",
    "effective_permissions",
    "sanitize_permissions",
    "require_permission",
]
