"""Request middleware binding the forum session and request ids to each call."""

import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from src.core.context import (
    clear_context,
    set_correlation_id,
    set_request_id,
    set_session_id,
)


logger = structlog.get_logger(__name__)

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind request, session and correlation ids for the duration of a request.

    ``X-Session-ID`` names the forum client session issuing a mutation. It is
    kept on ``request.state.session_id`` and in the context variables, from
    which the thread store stamps the ``origin`` of every published event.
    The header is echoed back so clients can check which session a response
    was attributed to.
    """

    REQUEST_ID_HEADER = "X-Request-ID"
    SESSION_ID_HEADER = "X-Session-ID"
    CORRELATION_ID_HEADER = "X-Correlation-ID"

    def __init__(
        self,
        app: ASGIApp,
        log_requests: bool = True,
        exclude_paths: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.log_requests = log_requests
        # WebSocket upgrades never reach BaseHTTPMiddleware but keep them quiet
        self.exclude_paths = tuple(exclude_paths or ("/health", "/ws"))

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        started = time.perf_counter()

        request_id = set_request_id(request.headers.get(self.REQUEST_ID_HEADER))
        session_id = request.headers.get(self.SESSION_ID_HEADER) or None
        set_session_id(session_id)
        set_correlation_id(request.headers.get(self.CORRELATION_ID_HEADER))

        request.state.request_id = request_id
        request.state.session_id = session_id

        path = request.url.path
        should_log = self.log_requests and not path.startswith(self.exclude_paths)
        if should_log:
            logger.info(
                "request_started",
                method=request.method,
                path=path,
                mutation=request.method in MUTATING_METHODS,
                client_ip=client_ip(request),
            )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "request_failed",
                method=request.method,
                path=path,
                error_type=type(e).__name__,
                duration_ms=_elapsed_ms(started),
            )
            raise
        finally:
            clear_context()

        if should_log:
            log = logger.warning if response.status_code >= 400 else logger.info
            log(
                "request_completed",
                method=request.method,
                path=path,
                status_code=response.status_code,
                duration_ms=_elapsed_ms(started),
                request_id=request_id,
                session_id=session_id,
            )

        response.headers[self.REQUEST_ID_HEADER] = request_id
        if session_id:
            response.headers[self.SESSION_ID_HEADER] = session_id
        return response


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def client_ip(request: Request) -> str | None:
    """Client address, honouring reverse proxy headers."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.headers.get("x-real-ip") or (
        request.client.host if request.client else None
    )


__all__ = ["RequestContextMiddleware", "client_ip"]
