# SPDX-License-Identifier: Apache-2.0

"""
Authorization domain logic for role-based access control.

Each portal role maps to a fixed set of ``resource:action`` permissions that
are embedded in the access token at login.
"""

from typing import Dict, List, Optional
from dataclasses import dataclass, field

from ..models.entities import UserContext
from ..models.enums import UserRole

_SELF_SERVICE = [
    "profile:read_own",
    "profile:update_own",
    "notification:read_own",
    "promotion:read",
]

_BUYER = _SELF_SERVICE + [
    "order:create",
    "order:read_own",
    "order:cancel_own",
    "rating:create",
    "shipping:quote",
    "coupon:apply",
]

ROLE_PERMISSIONS: Dict[str, List[str]] = {
    UserRole.CLIENT.value: list(_BUYER),
    UserRole.WHOLESALE.value: list(_BUYER),
    UserRole.DRIVER.value: _SELF_SERVICE + [
        "order:read_assigned",
        "order:accept",
        "order:reject",
        "order:update_status",
        "driver:stats_own",
        "wallet:read_own",
        "withdrawal:create",
        "withdrawal:read_own",
        "rating:read_own",
    ],
    UserRole.ADMIN.value: _SELF_SERVICE + [
        "order:read_all",
        "order:confirm",
        "order:cancel_any",
        "profile:read_all",
        "profile:approve",
        "profile:block",
        "driver:stats_any",
        "withdrawal:read_all",
        "withdrawal:review",
        "rating:read_all",
        "delivery_config:manage",
        "shipping:quote",
        "product:manage",
        "coupon:manage",
        "promotion:manage",
    ],
}


@dataclass
class AuthorizationResult:
    """Result of an authorization check."""
    allowed: bool
    reason: Optional[str] = None
    missing_permissions: List[str] = field(default_factory=list)


def permissions_for_role(role: str) -> List[str]:
    """Sorted permission list for a role; unknown roles get nothing."""
    role_value = getattr(role, 'value', role)
    return sorted(set(ROLE_PERMISSIONS.get(role_value, [])))


def check_permission(user_context: UserContext, required_permission: str) -> AuthorizationResult:
    """
    Check if user has a specific permission.

    Args:
        user_context: User context with permissions
        required_permission: Permission string to check

    Returns:
        AuthorizationResult indicating if permission is granted
    """
    if required_permission in user_context.permissions:
        return AuthorizationResult(allowed=True)

    return AuthorizationResult(
        allowed=False,
        reason=f"Missing required permission: {required_permission}",
        missing_permissions=[required_permission]
    )


def check_permissions(user_context: UserContext, required_permissions: List[str], require_all: bool = True) -> AuthorizationResult:
    """
    Check if user has required permissions.

    Args:
        user_context: User context with permissions
        required_permissions: List of permission strings to check
        require_all: If True, user must have all permissions. If False, any permission is sufficient.

    Returns:
        AuthorizationResult indicating if permissions are granted
    """
    user_permissions = set(user_context.permissions)
    required_set = set(required_permissions)

    if require_all:
        missing = required_set - user_permissions
        if not missing:
            return AuthorizationResult(allowed=True)

        return AuthorizationResult(
            allowed=False,
            reason=f"Missing required permissions: {', '.join(sorted(missing))}",
            missing_permissions=sorted(missing)
        )

    if user_permissions & required_set:
        return AuthorizationResult(allowed=True)

    return AuthorizationResult(
        allowed=False,
        reason=f"Missing any of required permissions: {', '.join(sorted(required_permissions))}",
        missing_permissions=list(required_permissions)
    )


def check_resource_owner(
    user_context: UserContext,
    owner_id: Optional[str],
    override_permission: Optional[str] = None
) -> AuthorizationResult:
    """
    Allow the owner of a resource, or anyone holding ``override_permission``.
    """
    if owner_id is not None and owner_id == user_context.user_id:
        return AuthorizationResult(allowed=True)

    if override_permission and override_permission in user_context.permissions:
        return AuthorizationResult(allowed=True)

    return AuthorizationResult(
        allowed=False,
        reason="Resource belongs to another user",
        missing_permissions=[override_permission] if override_permission else []
    )
