"""FastAPI dependencies for authentication.

Provides dependency injection for:
- Current actor extraction from the Bearer JWT
- Moderator-only endpoints
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError

from src.auth.schemas import Actor
from src.auth.security import decode_access_token
from src.core.context import set_user_id


def get_token_from_header(request: Request) -> str | None:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    expected_parts = 2
    parts = auth_header.split()
    if len(parts) != expected_parts or parts[0].lower() != "bearer":
        return None

    return parts[1]


def authenticate_token(token: str) -> Actor:
    """Decode a token into an Actor and bind its id to the log context.

    Raises:
        JWTError: If the token is invalid or expired
    """
    actor = Actor.from_token_payload(decode_access_token(token))
    set_user_id(actor.id)
    return actor


async def get_current_user(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> Actor:
    """Get the authenticated actor.

    Raises:
        HTTPException(401): If token is missing, invalid, or expired
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token not provided",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return authenticate_token(token)
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def get_current_user_optional(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> Actor | None:
    """Get the actor if authenticated, None otherwise.

    Use this for read endpoints that anonymous visitors may call.
    """
    if not token:
        return None

    try:
        return authenticate_token(token)
    except JWTError:
        return None


async def require_moderator(
    user: Annotated[Actor, Depends(get_current_user)],
) -> Actor:
    """Require an ADMIN or ROOTADMIN actor.

    Raises:
        HTTPException(403): If the actor is not a moderator
    """
    if not user.is_moderator:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Moderator permission required",
        )
    return user


CurrentUser = Annotated[Actor, Depends(get_current_user)]
OptionalUser = Annotated[Actor | None, Depends(get_current_user_optional)]
ModeratorUser = Annotated[Actor, Depends(require_moderator)]
