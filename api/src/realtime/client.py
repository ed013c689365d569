"""HTTP transport for the optimistic session.

Talks to the forum REST API with httpx. Transport failures become
``NetworkFailure``; API error bodies (``{"code": ..., "message": ...}``) are
turned back into the matching forum exception so callers handle the same
error types on both the optimistic and the server path.
"""

from typing import Any, TypeVar

import httpx
import structlog

from src.forum.exceptions import ForumError, NetworkFailure, error_from_code
from src.forum.models import Comment, Location, Post, Reply
from src.forum.reactions import ReactionKind, ReactionState

from .events import EntityPath


logger = structlog.get_logger(__name__)

SESSION_HEADER = "X-Session-ID"

T = TypeVar("T", Post, Comment, Reply)


def entity_url(path: EntityPath) -> str:
    """REST path of a post, comment or reply."""
    if path.reply_id:
        return f"/forum/comment/{path.post_id}/{path.comment_id}/reply/{path.reply_id}"
    if path.comment_id:
        return f"/forum/comment/{path.post_id}/{path.comment_id}"
    return f"/forum/{path.post_id}"


def reaction_url(path: EntityPath, kind: ReactionKind) -> str:
    if path.comment_id:
        return f"{entity_url(path)}/{kind.value}"
    return f"/forum/{kind.value}/{path.post_id}"


def _build(model: type[T], document: Any) -> T:
    """Decode a success body, treating a wrong shape like a broken response."""
    try:
        return model.from_document(document)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        logger.warning("forum_response_invalid", model=model.__name__, error=str(e))
        raise NetworkFailure("Unexpected response from forum API") from e


class HttpForumTransport:
    """Forum API client bound to one user token and client session."""

    def __init__(
        self,
        base_url: str,
        token: str,
        session_id: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.session_id = session_id
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._headers = {
            "Authorization": f"Bearer {token}",
            SESSION_HEADER: session_id,
        }

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(
                method, url, json=json, params=params, headers=self._headers
            )
        except httpx.TimeoutException as e:
            logger.warning("forum_request_timeout", method=method, url=url)
            raise NetworkFailure("Request timed out") from e
        except httpx.TransportError as e:
            logger.warning("forum_request_failed", method=method, url=url, error=str(e))
            raise NetworkFailure(f"Network error: {e}") from e

        if response.is_error:
            raise self._error_from(response)
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as e:
            logger.warning(
                "forum_response_undecodable",
                method=method,
                url=url,
                status_code=response.status_code,
            )
            raise NetworkFailure("Malformed response from forum API") from e
        if not isinstance(body, dict):
            raise NetworkFailure("Unexpected response from forum API")
        return body

    @staticmethod
    def _error_from(response: httpx.Response) -> ForumError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.get("message") or body.get("detail") or response.reason_phrase
        logger.info(
            "forum_request_rejected",
            status_code=response.status_code,
            code=body.get("code"),
        )
        return error_from_code(body.get("code"), str(message))

    # ==========================================================================
    # ForumTransport
    # ==========================================================================

    async def create_post(
        self,
        title: str,
        content: str,
        category: str,
        location: Location | None,
        client_ref: str,
    ) -> Post:
        body: dict[str, Any] = {
            "title": title,
            "content": content,
            "category": category,
            "client_ref": client_ref,
        }
        if location is not None:
            body["location"] = location.to_document()
        return _build(Post, await self._request("POST", "/forum/create", body))

    async def create_comment(
        self, post_id: str, content: str, client_ref: str
    ) -> Comment:
        data = await self._request(
            "POST",
            f"/forum/comment/{post_id}",
            {"content": content, "client_ref": client_ref},
        )
        return _build(Comment, data)

    async def create_reply(
        self,
        post_id: str,
        comment_id: str,
        content: str,
        parent_reply_id: str | None,
        client_ref: str,
    ) -> Reply:
        data = await self._request(
            "POST",
            f"/forum/comment/{post_id}/{comment_id}/reply",
            {
                "content": content,
                "parent_reply_id": parent_reply_id,
                "client_ref": client_ref,
            },
        )
        return _build(Reply, data)

    async def edit(self, path: EntityPath, content: str) -> None:
        await self._request("PUT", entity_url(path), {"content": content})

    async def delete(self, path: EntityPath) -> None:
        await self._request("DELETE", entity_url(path))

    async def toggle_reaction(
        self, path: EntityPath, kind: ReactionKind
    ) -> ReactionState:
        data = await self._request("PUT", reaction_url(path, kind))
        likes, dislikes = data.get("likes") or [], data.get("dislikes") or []
        if not isinstance(likes, list) or not isinstance(dislikes, list):
            raise NetworkFailure("Unexpected response from forum API")
        return ReactionState(likes=frozenset(likes), dislikes=frozenset(dislikes))

    async def list_posts(self, **filters: Any) -> list[Post]:
        """Post summaries (without comments) for ``ForumReplica.load``."""
        params = {k: v for k, v in filters.items() if v is not None}
        data = await self._request("GET", "/forum", params=params)
        return [_build(Post, summary) for summary in data.get("posts") or []]

    async def get_post(self, post_id: str) -> Post:
        """Full post with its comment tree. Counts as a view."""
        return _build(Post, await self._request("GET", f"/forum/{post_id}"))
