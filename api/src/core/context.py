"""Request context tracking using contextvars.

Every HTTP request (and every WebSocket connection) carries a request id, the
acting user and, for forum clients, the id of the client session that issued
the mutation. The session id is what the fan-out layer stamps on events as
their ``origin`` so a client can recognise the echo of its own writes.
"""

from contextvars import ContextVar, Token
from typing import Any
from uuid import UUID, uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
session_id_var: ContextVar[str | None] = ContextVar("session_id", default=None)
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

_CONTEXT_VARS: dict[str, ContextVar[Any]] = {
    "request_id": request_id_var,
    "user_id": user_id_var,
    "session_id": session_id_var,
    "correlation_id": correlation_id_var,
}


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid4())


def get_request_id() -> str:
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context, generating one if missing."""
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


def get_user_id() -> str | None:
    return user_id_var.get()


def set_user_id(user_id: str | UUID | None) -> None:
    user_id_var.set(str(user_id) if user_id is not None else None)


def get_session_id() -> str | None:
    """Get the client session that originated the current request."""
    return session_id_var.get()


def set_session_id(session_id: str | None) -> None:
    session_id_var.set(session_id)


def get_correlation_id() -> str | None:
    return correlation_id_var.get()


def set_correlation_id(correlation_id: str | None) -> None:
    correlation_id_var.set(correlation_id)


def get_context() -> dict[str, Any]:
    """Get every non-empty context variable as a dictionary."""
    context: dict[str, Any] = {}
    for name, var in _CONTEXT_VARS.items():
        value = var.get()
        if value:
            context[name] = value
    return context


def clear_context() -> None:
    """Reset all context variables.

    Called at the end of each request so values never leak into the next one
    handled by the same task.
    """
    request_id_var.set("")
    user_id_var.set(None)
    session_id_var.set(None)
    correlation_id_var.set(None)


class RequestContext:
    """Context manager scoping context variables to a block.

    Usage:
        with RequestContext(user_id=actor.id, session_id=session.id):
            logger.info("forum_socket_message")  # includes user_id, session_id
    """

    def __init__(
        self,
        request_id: str | None = None,
        user_id: str | UUID | None = None,
        session_id: str | None = None,
        correlation_id: str | None = None,
    ) -> None:
        self._values: dict[str, Any] = {
            "request_id": request_id or generate_request_id(),
            "user_id": str(user_id) if user_id is not None else None,
            "session_id": session_id,
            "correlation_id": correlation_id,
        }
        self._tokens: dict[str, Token[Any]] = {}

    def __enter__(self) -> "RequestContext":
        for name, value in self._values.items():
            if value is not None:
                self._tokens[name] = _CONTEXT_VARS[name].set(value)
        return self

    def __exit__(self, *_: object) -> None:
        for name, token in self._tokens.items():
            _CONTEXT_VARS[name].reset(token)
        self._tokens.clear()
