"""The acting principal as supplied by the identity provider."""

from dataclasses import dataclass, field
from typing import Any, Mapping

from .permissions import PermissionKey, Role, parse_permission_map, sanitize_permissions


@dataclass(frozen=True)
class Actor:
    """An authenticated principal performing a workflow action."""

    id: str
    role: Role
    permissions: Mapping[PermissionKey, bool] = field(default_factory=dict)

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> "Actor":
        """Build an actor from decoded token claims.

        Restricted keys are cleared for anyone below super admin.

        Raises:
            ValueError: If the subject or role claim is missing or unknown
        """
        subject = claims.get("sub")
        if not subject:
            raise ValueError("Token has no subject")
        role = Role(claims.get("role", ""))
        return cls(
            id=str(subject),
            role=role,
            permissions=sanitize_permissions(role, parse_permission_map(claims.get("permissions") or {})),
        )
