"""Permission model for the marketplace admin back-end.

Admins hold a flat map of permission keys to booleans, one key per
administrative area. Super-admins hold every key implicitly.

Permission keys:
  - orders, products, returns, sellers, ...
  - users (restricted: only ever effective for super-admins)
"""

from enum import Enum
from typing import FrozenSet, Mapping, Any


class Role(str, Enum):
    """Roles an acting principal can hold."""

    USER = "user"
    SELLER = "seller"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class PermissionKey(str, Enum):
    """Administrative areas an admin can be granted."""

    ORDERS = "orders"             # View and process orders
    PRODUCTS = "products"         # Product listing moderation
    USERS = "users"               # Account management (restricted)
    COMPLAINTS = "complaints"     # Respond to customer issues
    RETURNS = "returns"           # Approve/reject returns and refunds
    COUPONS = "coupons"           # Discount codes
    SETTINGS = "settings"         # Site configuration
    INQUIRIES = "inquiries"       # Contact form messages
    SELLERS = "sellers"           # Seller onboarding and moderation


# Keys that are never effective for anyone below SUPER_ADMIN, whatever the
# stored flags say.
RESTRICTED_PERMISSIONS: FrozenSet[PermissionKey] = frozenset([
    PermissionKey.USERS,
])


def is_valid_permission(key: str) -> bool:
    """Check if a permission key is known."""
    return key in PermissionKey._value2member_map_


def parse_permission_map(raw: Mapping[str, Any]) -> dict[PermissionKey, bool]:
    """Convert a raw ``{"orders": true, ...}`` map into typed keys.

    Unknown keys are dropped and only a literal ``True`` grants a key.
    """
    parsed: dict[PermissionKey, bool] = {}
    for key, value in (raw or {}).items():
        if is_valid_permission(key):
            parsed[PermissionKey(key)] = value is True
    return parsed


def sanitize_permissions(
    role: Role,
    permissions: Mapping[PermissionKey, bool],
) -> dict[PermissionKey, bool]:
    """Strip restricted keys from a permission map before it is trusted."""
    if role == Role.SUPER_ADMIN:
        return dict(permissions)
    return {
        key: (granted is True and key not in RESTRICTED_PERMISSIONS)
        for key, granted in permissions.items()
    }
