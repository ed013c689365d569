"""Pydantic schemas for the authenticated actor."""

from pydantic import BaseModel, ConfigDict, Field

from src.auth.permissions import UserRole, is_moderator


class Actor(BaseModel):
    """The user performing a request, as carried by the access token."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="User ID")
    role: UserRole = Field(default=UserRole.USER, description="User role")
    name: str = Field(default="", description="Display name")
    avatar: str | None = Field(default=None, description="Avatar URL")

    @property
    def is_moderator(self) -> bool:
        return is_moderator(self.role)

    @classmethod
    def from_token_payload(cls, payload: dict) -> "Actor":
        role = payload.get("role", UserRole.USER.value)
        try:
            role = UserRole(role)
        except ValueError:
            role = UserRole.USER
        return cls(
            id=str(payload["sub"]),
            role=role,
            name=payload.get("name") or "",
            avatar=payload.get("avatar"),
        )
