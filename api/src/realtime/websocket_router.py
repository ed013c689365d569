"""WebSocket API for real-time forum updates.

Provides:
- WS /ws/forum - Forum event stream, optionally scoped to categories
"""

import asyncio
from uuid import uuid4

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from jose import JWTError

from src.auth.dependencies import authenticate_token
from src.auth.schemas import Actor
from src.config import get_settings
from src.core.context import RequestContext
from src.core.logging import get_logger

from .hub import ForumEventHub


logger = get_logger(__name__)

router = APIRouter(tags=["forum-ws"])

AUTH_FAILED_CLOSE_CODE = 4001
# Starlette/RFC 6455 "try again later"
UNAVAILABLE_CLOSE_CODE = 1013


def authenticate_websocket(token: str | None) -> Actor | None:
    """Authenticate a WebSocket connection using its JWT token.

    Anonymous viewers are allowed when no token is given; an invalid token
    is rejected.
    """
    if not token:
        return None
    try:
        return authenticate_token(token)
    except (JWTError, KeyError, ValueError) as e:
        logger.warning("forum_websocket_auth_failed", error=str(e))
        raise


def parse_categories(raw: str | list[str] | None) -> list[str]:
    if raw is None:
        return []
    items = raw.split(",") if isinstance(raw, str) else raw
    return [item.strip() for item in items if item and item.strip()]


@router.websocket("/ws/forum")
async def forum_websocket(
    websocket: WebSocket,
    token: str | None = Query(None, description="JWT access token"),
    categories: str | None = Query(None, description="Comma separated categories"),
    session_id: str | None = Query(None, description="Client session id"),
) -> None:
    """WebSocket endpoint for forum events.

    Connect with: ws://host/ws/forum?token=<jwt>&categories=Events,Safety

    Pass the same ``session_id`` the client sends as ``X-Session-ID`` on its
    REST calls so it can recognise the echo of its own writes.

    Messages received:
    - {"type": "connected", "session_id": ..., "categories": [...]}
    - {"type": "postCreated" | "commentAdded" | ..., "payload": {...}}
    - {"type": "subscribed", "categories": [...]}
    - {"type": "ping"} - Keep-alive ping

    Messages you can send:
    - {"type": "subscribe", "categories": [...]} - Change category scope
    - {"type": "ping"} / {"type": "pong"}
    """
    try:
        actor = authenticate_websocket(token)
    except (JWTError, KeyError, ValueError):
        await websocket.close(code=AUTH_FAILED_CLOSE_CODE, reason="Authentication failed")
        return

    hub: ForumEventHub | None = getattr(websocket.app.state, "forum_hub", None)
    if hub is None or not hub.is_running:
        await websocket.close(
            code=UNAVAILABLE_CLOSE_CODE, reason="Real-time updates unavailable"
        )
        return

    session_id = session_id or str(uuid4())
    user_id = actor.id if actor else None

    with RequestContext(user_id=user_id, session_id=session_id):
        await websocket.accept()
        session = await hub.connect(
            session_id,
            websocket.send_json,
            user_id=user_id,
            categories=parse_categories(categories),
            close=lambda code, reason: websocket.close(code=code, reason=reason),
        )

        try:
            await websocket.send_json(
                {
                    "type": "connected",
                    "session_id": session_id,
                    "user_id": user_id,
                    "categories": sorted(session.categories),
                }
            )

            ping_interval = get_settings().fanout_ping_interval_seconds
            loop = asyncio.get_running_loop()
            last_ping = loop.time()

            while True:
                try:
                    message = await asyncio.wait_for(
                        websocket.receive_json(), timeout=ping_interval
                    )
                except TimeoutError:
                    current_time = loop.time()
                    if current_time - last_ping >= ping_interval:
                        await websocket.send_json({"type": "ping"})
                        last_ping = current_time
                    continue

                message_type = message.get("type") if isinstance(message, dict) else None
                if message_type == "ping":
                    await websocket.send_json({"type": "pong"})
                elif message_type == "subscribe":
                    scope = parse_categories(message.get("categories"))
                    hub.subscribe(session_id, scope)
                    await websocket.send_json(
                        {"type": "subscribed", "categories": sorted(scope)}
                    )

        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.warning("forum_websocket_error", error=str(e))
        finally:
            # A reconnect may already have replaced this session
            if hub.get_session(session_id) is session:
                await hub.disconnect(session_id, reason="client disconnected")

