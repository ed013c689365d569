"""Authentication: verifying bearer tokens and moderator roles."""

from src.auth.permissions import UserRole, is_moderator
from src.auth.schemas import Actor


__all__ = ["Actor", "UserRole", "is_moderator"]
