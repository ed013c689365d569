"""Domain errors for the forum.

Every error carries a stable ``code`` that is sent to clients in API error
bodies. ``error_from_code`` rebuilds the matching exception on the client side
so server and optimistic paths raise the same types.
"""

from fastapi import status


class ForumError(Exception):
    """Base forum error."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, code: str = "forum_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class Forbidden(ForumError):
    """Actor is neither the author nor a moderator."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message, "forbidden")


class InvalidParent(ForumError):
    """Reply parent does not exist in the same comment, or nesting is too deep."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, message: str = "Parent reply not found in this comment"):
        super().__init__(message, "invalid_parent")


class LockedOrClosed(ForumError):
    """Target is locked (post) or closed (dispute)."""

    status_code = status.HTTP_423_LOCKED

    def __init__(self, message: str = "This thread is locked"):
        super().__init__(message, "locked_or_closed")


class NotFound(ForumError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "Not found"):
        super().__init__(message, "not_found")


class AlreadyReported(ForumError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "You have already reported this content"):
        super().__init__(message, "already_reported")


class InvalidTransition(ForumError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "Invalid status transition"):
        super().__init__(message, "invalid_transition")


class InvalidContent(ForumError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, message: str = "Content is empty or too long"):
        super().__init__(message, "invalid_content")


class RateLimitExceeded(ForumError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, message: str = "Too many requests, slow down"):
        super().__init__(message, "rate_limit_exceeded")


class NetworkFailure(ForumError):
    """The server could not be reached. Raised on the client side only."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str = "Network request failed"):
        super().__init__(message, "network_failure")


_ERRORS_BY_CODE: dict[str, type[ForumError]] = {
    "forbidden": Forbidden,
    "invalid_parent": InvalidParent,
    "locked_or_closed": LockedOrClosed,
    "not_found": NotFound,
    "already_reported": AlreadyReported,
    "invalid_transition": InvalidTransition,
    "invalid_content": InvalidContent,
    "rate_limit_exceeded": RateLimitExceeded,
    "network_failure": NetworkFailure,
}


def error_from_code(code: str | None, message: str) -> ForumError:
    """Rebuild a domain error from an API error body."""
    error_cls = _ERRORS_BY_CODE.get(code or "")
    if error_cls is None:
        return ForumError(message, code or "forum_error")
    return error_cls(message)
