"""Role-based access control for the forum.

Roles as issued by the identity service:
- ROOTADMIN: platform owner
- ADMIN: community moderator
- USER: registered member

ADMIN and ROOTADMIN are moderators: they may pin and lock posts, edit or
delete any content, comment on locked posts and drive the dispute workflow.
"""

from enum import Enum


class UserRole(str, Enum):
    """User roles with hierarchical levels."""

    USER = "user"
    ADMIN = "admin"
    ROOTADMIN = "rootadmin"


ROLE_HIERARCHY: dict[UserRole, int] = {
    UserRole.USER: 0,
    UserRole.ADMIN: 1,
    UserRole.ROOTADMIN: 2,
}

MODERATOR_ROLES = frozenset({UserRole.ADMIN, UserRole.ROOTADMIN})


def get_role_level(role: UserRole | str) -> int:
    """Get the permission level for a role, 0 for unknown roles."""
    if isinstance(role, str):
        try:
            role = UserRole(role)
        except ValueError:
            return 0
    return ROLE_HIERARCHY.get(role, 0)


def has_permission(user_role: UserRole | str, required_role: UserRole | str) -> bool:
    """Check if user has at least the required permission level.

    Examples:
        >>> has_permission(UserRole.ROOTADMIN, UserRole.ADMIN)
        True
        >>> has_permission("user", "admin")
        False
    """
    return get_role_level(user_role) >= get_role_level(required_role)


def is_moderator(role: UserRole | str) -> bool:
    """Check if role may moderate forum content."""
    return has_permission(role, UserRole.ADMIN)
