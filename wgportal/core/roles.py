"""
Role definitions for RBAC.

Roles in hierarchy (lowest to highest):
- user: Claim, rename, download and revoke own peers
- admin: Full access including peer assignment, user management, import and audit log
"""
from enum import Enum
from typing import Dict, Iterable, Set


class Role(str, Enum):
    """Portal roles with hierarchy."""
    USER = "user"
    ADMIN = "admin"


ROLE_HIERARCHY: Dict[str, int] = {
    Role.USER.value: 1,
    Role.ADMIN.value: 2,
}

VALID_ROLES: Set[str] = {r.value for r in Role}


def normalize_role(role: str) -> str:
    """
    Normalize role string.

    Unknown roles map to the least privileged role.
    """
    role_lower = role.lower().strip()
    if role_lower in VALID_ROLES:
        return role_lower
    return Role.USER.value


def highest_role(roles: Iterable[str]) -> str:
    """Return the most privileged role in a role set (user if empty)."""
    normalized = [normalize_role(r) for r in roles]
    if not normalized:
        return Role.USER.value
    return max(normalized, key=lambda r: ROLE_HIERARCHY.get(r, 0))


def has_permission(user_role: str, required_role: str) -> bool:
    """
    Check if user role has permission for required role.

    Args:
        user_role: User's role
        required_role: Minimum required role

    Returns:
        True if user has sufficient permissions
    """
    user_level = ROLE_HIERARCHY.get(normalize_role(user_role), 0)
    required_level = ROLE_HIERARCHY.get(normalize_role(required_role), 0)
    return user_level >= required_level
