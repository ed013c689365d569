"""Tests for the HTTP forum transport."""

import httpx
import pytest

from src.forum.exceptions import (
    ForumError,
    LockedOrClosed,
    NetworkFailure,
    NotFound,
)
from src.forum.reactions import ReactionKind
from src.realtime.client import HttpForumTransport, entity_url, reaction_url
from src.realtime.events import EntityPath


NOW = "2026-01-01T12:00:00Z"

COMMENT_BODY = {
    "id": "c1",
    "post_id": "p1",
    "content": "Hi",
    "author": {"id": "u1", "name": "Alice", "avatar": None},
    "likes": [],
    "dislikes": [],
    "report_count": 0,
    "mentions": [],
    "is_edited": False,
    "replies": [],
    "created_at": NOW,
    "updated_at": NOW,
}


def _transport(handler) -> HttpForumTransport:
    client = httpx.AsyncClient(
        base_url="http://forum.test", transport=httpx.MockTransport(handler)
    )
    return HttpForumTransport(
        "http://forum.test", token="tok", session_id="s-1", client=client
    )


class TestUrls:
    def test_entity_urls(self):
        assert entity_url(EntityPath("p1")) == "/forum/p1"
        assert entity_url(EntityPath("p1", "c1")) == "/forum/comment/p1/c1"
        assert (
            entity_url(EntityPath("p1", "c1", "r1")) == "/forum/comment/p1/c1/reply/r1"
        )

    def test_reaction_urls(self):
        assert reaction_url(EntityPath("p1"), ReactionKind.LIKE) == "/forum/like/p1"
        assert (
            reaction_url(EntityPath("p1", "c1"), ReactionKind.DISLIKE)
            == "/forum/comment/p1/c1/dislike"
        )


class TestHttpForumTransport:
    @pytest.mark.asyncio
    async def test_create_comment_sends_session_and_ref(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["headers"] = request.headers
            seen["path"] = request.url.path
            seen["body"] = request.content
            return httpx.Response(201, json=COMMENT_BODY)

        comment = await _transport(handler).create_comment("p1", "Hi", "local-1")

        assert seen["path"] == "/forum/comment/p1"
        assert seen["headers"]["X-Session-ID"] == "s-1"
        assert seen["headers"]["Authorization"] == "Bearer tok"
        assert b'"client_ref":"local-1"' in seen["body"].replace(b" ", b"")
        assert comment.id == "c1"
        assert comment.author.name == "Alice"

    @pytest.mark.asyncio
    async def test_toggle_reaction(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "PUT"
            assert request.url.path == "/forum/comment/p1/c1/like"
            return httpx.Response(
                200,
                json={"likes": ["u1"], "dislikes": [], "like_count": 1, "dislike_count": 0},
            )

        state = await _transport(handler).toggle_reaction(
            EntityPath("p1", "c1"), ReactionKind.LIKE
        )
        assert state.likes == frozenset({"u1"})

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,code,error_type",
        [
            (423, "locked_or_closed", LockedOrClosed),
            (404, "not_found", NotFound),
        ],
    )
    async def test_error_codes_map_to_exceptions(self, status, code, error_type):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                status, json={"error": True, "code": code, "message": "nope"}
            )

        with pytest.raises(error_type, match="nope"):
            await _transport(handler).create_comment("p1", "Hi", "local-1")

    @pytest.mark.asyncio
    async def test_unknown_error_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="boom")

        with pytest.raises(ForumError) as exc_info:
            await _transport(handler).delete(EntityPath("p1"))
        assert exc_info.value.code == "forum_error"

    @pytest.mark.asyncio
    async def test_connection_error_is_network_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(NetworkFailure):
            await _transport(handler).edit(EntityPath("p1"), "x")

    @pytest.mark.asyncio
    async def test_list_posts_drops_empty_filters(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert dict(request.url.params) == {"category": "Events"}
            return httpx.Response(
                200,
                json={
                    "posts": [
                        {
                            "id": "p1",
                            "title": "Fair",
                            "content": "Sunday",
                            "category": "Events",
                            "author": {"id": "u1", "name": "Alice"},
                            "created_at": NOW,
                            "updated_at": NOW,
                        }
                    ],
                    "total": 1,
                    "has_more": False,
                },
            )

        posts = await _transport(handler).list_posts(category="Events", city=None)
        assert [p.title for p in posts] == ["Fair"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(201, text="<html>proxy ok</html>"),
            httpx.Response(201, json=["not", "an", "object"]),
            httpx.Response(201, json={"content": "missing ids"}),
        ],
    )
    async def test_malformed_success_is_network_failure(self, response):
        with pytest.raises(NetworkFailure):
            await _transport(lambda request: response).create_comment(
                "p1", "Hi", "local-1"
            )
