"""Mention candidate lookup against the property search API."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from src.config.settings import Settings

from .exceptions import NetworkFailure


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class MentionCandidate:
    id: str
    name: str
    cover_image: str | None
    location: str | None

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "MentionCandidate":
        images = item.get("images") or []
        location = item.get("location")
        return cls(
            id=str(item.get("_id") or item.get("id") or ""),
            name=item.get("name") or "",
            cover_image=item.get("coverImage") or (images[0] if images else None),
            location=location.get("city") if isinstance(location, dict) else location,
        )


class PropertySearchClient:
    """Thin async client for ``GET /property-search/search``."""

    def __init__(
        self,
        base_url: str,
        limit: int = 5,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.limit = limit
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "PropertySearchClient":
        return cls(
            base_url=settings.mention_lookup_base_url,
            limit=settings.mention_lookup_limit,
            timeout=settings.mention_lookup_timeout_seconds,
        )

    async def search(self, query: str) -> list[MentionCandidate]:
        """Return up to ``limit`` ranked candidates for ``query``.

        Raises:
            NetworkFailure: on timeout, transport error or non-2xx response
        """
        url = f"{self.base_url}/property-search/search"
        params = {"query": query, "limit": self.limit}

        try:
            if self._client is not None:
                response = await self._client.get(url, params=params)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, params=params)
        except httpx.TimeoutException as e:
            logger.warning("mention_lookup_timeout", query=query, error=str(e))
            raise NetworkFailure("Property search timed out") from e
        except httpx.RequestError as e:
            logger.warning("mention_lookup_request_error", query=query, error=str(e))
            raise NetworkFailure(f"Property search request error: {e}") from e

        if response.status_code != httpx.codes.OK:
            logger.warning(
                "mention_lookup_failed",
                status_code=response.status_code,
                response_text=response.text[:200],
            )
            raise NetworkFailure(f"Property search error: {response.status_code}")

        items = response.json().get("data") or []
        candidates = [MentionCandidate.from_item(item) for item in items]
        return [c for c in candidates if c.id and c.name][: self.limit]


class DebouncedLookup:
    """Run a lookup only after input has been quiet for ``delay`` seconds.

    A newer ``query`` call cancels the pending one; the superseded caller gets
    ``None``. Lookup failures are logged and yield an empty list since
    suggestions are advisory.
    """

    def __init__(
        self,
        search: Callable[[str], Awaitable[list[MentionCandidate]]],
        delay: float = 0.3,
    ):
        self._search = search
        self._delay = delay
        self._task: asyncio.Task[list[MentionCandidate]] | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "DebouncedLookup":
        client = PropertySearchClient.from_settings(settings)
        return cls(client.search, delay=settings.mention_lookup_debounce_seconds)

    async def _run(self, query: str) -> list[MentionCandidate]:
        await asyncio.sleep(self._delay)
        try:
            return await self._search(query)
        except NetworkFailure as e:
            logger.info("mention_lookup_skipped", query=query, reason=e.message)
            return []

    async def query(self, query: str) -> list[MentionCandidate] | None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

        task = asyncio.create_task(self._run(query))
        self._task = task
        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled() and self._task is not task:
                return None
            raise

    def cancel(self) -> None:
        """Drop the pending lookup; its caller gets None."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
