"""FastAPI dependencies for the forum.

Provides dependency injection for:
- Thread store (all writes)
- Forum service (listing, stats, rate limiting)
- Error conversion to HTTP responses
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .exceptions import ForumError
from .service import ForumService
from .store import ThreadStore


class ForumHTTPException(HTTPException):
    """HTTPException that keeps the domain error code for the response body."""

    def __init__(self, status_code: int, detail: str, code: str):
        super().__init__(status_code=status_code, detail=detail)
        self.code = code


async def get_thread_store(request: Request) -> ThreadStore:
    """Get thread store from app state."""
    store = getattr(request.app.state, "thread_store", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Forum service not available",
        )
    return store


async def get_forum_service(request: Request) -> ForumService:
    service = getattr(request.app.state, "forum_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Forum service not available",
        )
    return service


# Type aliases for dependency injection
ThreadStoreDep = Annotated[ThreadStore, Depends(get_thread_store)]
ForumServiceDep = Annotated[ForumService, Depends(get_forum_service)]


def handle_forum_error(error: ForumError) -> ForumHTTPException:
    """Convert forum errors to HTTP exceptions.

    The status comes from the error class; the code travels with it so
    clients can rebuild the same domain error.
    """
    return ForumHTTPException(
        status_code=error.status_code,
        detail=error.message,
        code=error.code,
    )
