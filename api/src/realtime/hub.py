"""Real-time fan-out of forum events to connected sessions.

Key features:
- Fire-and-forget publishing (``asyncio.Queue.put_nowait``), never blocking
  the mutation that produced the event
- Optional Redis pub/sub relay so every API worker sees every event
- Server-side category scoping per session
- Per-session outbound queue with a single sender task, so one connection
  receives events in submission order
- Slow consumers are disconnected on overflow and must resync
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import orjson
import structlog

from .events import ForumEvent


if TYPE_CHECKING:
    from redis.asyncio import Redis


logger = structlog.get_logger(__name__)

# Close code sent to a session that fell too far behind
SLOW_CONSUMER_CLOSE_CODE = 4008

SendFn = Callable[[dict[str, Any]], Awaitable[None]]
CloseFn = Callable[[int, str], Awaitable[None]]


def _discard_backlog(queue: asyncio.Queue) -> None:
    while not queue.empty():
        queue.get_nowait()
        queue.task_done()


@dataclass
class ForumSession:
    """One connected viewer."""

    id: str
    send: SendFn
    queue: asyncio.Queue[dict[str, Any]]
    user_id: str | None = None
    categories: frozenset[str] = frozenset()
    close: CloseFn | None = None
    sender_task: asyncio.Task | None = field(default=None, repr=False)

    def accepts(self, event: ForumEvent) -> bool:
        # No filter means every category
        return not self.categories or event.category in self.categories


class ForumEventHub:
    """Connection manager and event fan-out with an owned lifecycle.

    Usage:
        hub = ForumEventHub(redis=redis_client)
        await hub.start()
        store = ThreadStore(repository, publisher=hub)
        await hub.connect("session-1", websocket.send_json, categories={"Events"})
        ...
        await hub.stop()
    """

    def __init__(
        self,
        redis: Redis | None = None,
        channel: str = "forum:events",
        queue_size: int = 10000,
        session_queue_size: int = 256,
    ) -> None:
        self.redis = redis
        self.channel = channel
        self.queue_size = queue_size
        self.session_queue_size = session_queue_size

        self._queue: asyncio.Queue[ForumEvent] = asyncio.Queue(maxsize=queue_size)
        self._sessions: dict[str, ForumSession] = {}
        self._running = False
        self._worker_task: asyncio.Task | None = None
        self._relay_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()

        # Counters for monitoring
        self._events_published = 0
        self._events_dropped = 0
        self._events_delivered = 0
        self._sessions_dropped = 0

    @property
    def is_running(self) -> bool:
        return self._running

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def start(self) -> None:
        if self._running:
            logger.warning("forum_hub_already_running")
            return

        self._running = True
        self._worker_task = asyncio.create_task(self._worker_loop(), name="forum_hub")
        if self.redis is not None:
            self._relay_task = asyncio.create_task(
                self._relay_loop(), name="forum_hub_relay"
            )
        logger.info(
            "forum_hub_started",
            relay=self.redis is not None,
            channel=self.channel,
            queue_size=self.queue_size,
        )

    async def stop(self) -> None:
        """Deliver what is queued, then close every session."""
        if not self._running:
            return

        self._running = False

        while not self._queue.empty():
            await self._dispatch(self._queue.get_nowait())
            self._queue.task_done()

        for task in (self._worker_task, self._relay_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._worker_task = None
        self._relay_task = None

        for session_id in list(self._sessions):
            await self.disconnect(session_id)

        logger.info(
            "forum_hub_stopped",
            events_published=self._events_published,
            events_delivered=self._events_delivered,
            events_dropped=self._events_dropped,
            sessions_dropped=self._sessions_dropped,
        )

    # ==========================================================================
    # Sessions
    # ==========================================================================

    async def connect(
        self,
        session_id: str,
        send: SendFn,
        user_id: str | None = None,
        categories: Iterable[str] | None = None,
        close: CloseFn | None = None,
    ) -> ForumSession:
        """Register a session; a reconnect with the same id replaces the old one."""
        if session_id in self._sessions:
            await self.disconnect(session_id)

        session = ForumSession(
            id=session_id,
            send=send,
            queue=asyncio.Queue(maxsize=self.session_queue_size),
            user_id=user_id,
            categories=frozenset(categories or ()),
            close=close,
        )
        session.sender_task = asyncio.create_task(
            self._session_sender(session), name=f"forum_session:{session_id}"
        )
        self._sessions[session_id] = session
        logger.info(
            "forum_session_connected",
            session_id=session_id,
            user_id=user_id,
            categories=sorted(session.categories),
        )
        return session

    def subscribe(self, session_id: str, categories: Iterable[str] | None) -> bool:
        """Replace a session's category scope. Empty or None means everything."""
        session = self._sessions.get(session_id)
        if session is None:
            return False
        session.categories = frozenset(categories or ())
        logger.debug(
            "forum_session_subscribed",
            session_id=session_id,
            categories=sorted(session.categories),
        )
        return True

    async def disconnect(
        self, session_id: str, code: int | None = None, reason: str = ""
    ) -> bool:
        """Remove a session. Unknown ids are a no-op returning False."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False

        task = session.sender_task
        if (
            task is not None
            and not task.done()
            and task is not asyncio.current_task()
        ):
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        _discard_backlog(session.queue)

        if code is not None and session.close is not None:
            try:
                await session.close(code, reason)
            except Exception as e:
                logger.debug(
                    "forum_session_close_failed", session_id=session_id, error=str(e)
                )

        logger.info(
            "forum_session_disconnected", session_id=session_id, reason=reason or None
        )
        return True

    def get_session(self, session_id: str) -> ForumSession | None:
        return self._sessions.get(session_id)

    def session_ids(self) -> list[str]:
        return list(self._sessions)

    # ==========================================================================
    # Fire-and-forget publishing
    # ==========================================================================

    def publish(self, event: ForumEvent) -> bool:
        """Queue an event for fan-out. Returns False if it was dropped."""
        try:
            self._queue.put_nowait(event)
            self._events_published += 1
            return True
        except asyncio.QueueFull:
            self._events_dropped += 1
            logger.warning(
                "forum_hub_queue_full",
                event_type=event.type.value,
                queue_size=self.queue_size,
                dropped_total=self._events_dropped,
            )
            return False

    async def flush(self) -> None:
        """Wait until every queued event has reached the session queues and
        every session queue has been sent."""
        if self._running:
            await self._queue.join()
        for session in list(self._sessions.values()):
            await session.queue.join()

    def stats(self) -> dict[str, int | bool]:
        return {
            "running": self._running,
            "sessions": len(self._sessions),
            "queued": self._queue.qsize(),
            "events_published": self._events_published,
            "events_delivered": self._events_delivered,
            "events_dropped": self._events_dropped,
            "sessions_dropped": self._sessions_dropped,
        }

    # ==========================================================================
    # Workers
    # ==========================================================================

    async def _worker_loop(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._dispatch(event)
            except Exception as e:
                logger.exception(
                    "forum_hub_dispatch_failed", event_type=event.type.value, error=str(e)
                )
            finally:
                self._queue.task_done()

    async def _dispatch(self, event: ForumEvent) -> None:
        """Send through the Redis relay when available, else deliver locally.

        With a relay every worker, this one included, delivers the event when
        it comes back from the channel.
        """
        if self.redis is not None and self._relay_task is not None:
            try:
                await self.redis.publish(self.channel, orjson.dumps(event.to_message()))
                return
            except Exception as e:
                logger.warning(
                    "forum_hub_relay_publish_failed",
                    event_type=event.type.value,
                    error=str(e),
                )
        self.deliver(event)

    async def _relay_loop(self) -> None:
        pubsub = self.redis.pubsub()
        try:
            await pubsub.subscribe(self.channel)
            logger.info("forum_hub_relay_subscribed", channel=self.channel)
            while True:
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=1.0
                )
                if message and message["type"] == "message":
                    try:
                        event = ForumEvent.from_message(orjson.loads(message["data"]))
                    except (orjson.JSONDecodeError, KeyError, ValueError) as e:
                        logger.warning("forum_hub_relay_bad_message", error=str(e))
                        continue
                    self.deliver(event)
        finally:
            with contextlib.suppress(Exception):
                await pubsub.unsubscribe(self.channel)
                await pubsub.aclose()
            logger.info("forum_hub_relay_unsubscribed", channel=self.channel)

    def deliver(self, event: ForumEvent) -> int:
        """Put an event on every matching session queue.

        Returns the number of sessions it was queued for.
        """
        message = event.to_message()
        delivered = 0
        for session in list(self._sessions.values()):
            if not session.accepts(event):
                continue
            try:
                session.queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                self._drop_slow_session(session)
        self._events_delivered += delivered
        return delivered

    def _drop_slow_session(self, session: ForumSession) -> None:
        if self._sessions.get(session.id) is not session:
            return
        self._sessions_dropped += 1
        logger.warning(
            "forum_session_overflow",
            session_id=session.id,
            queue_size=self.session_queue_size,
        )
        # flush() must not wait on a dead session
        _discard_backlog(session.queue)
        task = asyncio.get_running_loop().create_task(
            self.disconnect(
                session.id, code=SLOW_CONSUMER_CLOSE_CODE, reason="slow consumer"
            )
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _session_sender(self, session: ForumSession) -> None:
        while True:
            message = await session.queue.get()
            failed = False
            try:
                await session.send(message)
            except Exception as e:
                failed = True
                logger.info(
                    "forum_session_send_failed", session_id=session.id, error=str(e)
                )
            finally:
                session.queue.task_done()
            if failed:
                await self.disconnect(session.id)
                return
