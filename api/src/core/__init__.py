from src.core.context import (
    RequestContext,
    get_context,
    get_request_id,
    get_session_id,
    set_session_id,
    set_user_id,
)
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware


__all__ = [
    "RequestContext",
    "RequestContextMiddleware",
    "configure_structlog",
    "get_context",
    "get_logger",
    "get_request_id",
    "get_session_id",
    "set_session_id",
    "set_user_id",
]
