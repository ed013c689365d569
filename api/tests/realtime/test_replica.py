"""Tests for ForumReplica event application."""

import dataclasses
from datetime import UTC, datetime

import orjson
import pytest

from src.forum.models import AuthorRef, Category, Comment, Post
from src.forum.store import EntityRef, ThreadStore
from src.realtime.events import EntityPath, EventType, ForumEvent
from src.realtime.replica import Confirmed, ForumReplica, Pending


def _wire(event: ForumEvent) -> ForumEvent:
    """Send an event through its JSON message form."""
    return ForumEvent.from_message(orjson.loads(orjson.dumps(event.to_message())))


def _post(post_id: str, category: Category = Category.GENERAL) -> Post:
    now = datetime.now(UTC)
    return Post(
        id=post_id,
        title=post_id,
        content="x",
        category=category,
        author=AuthorRef(id="u1"),
        created_at=now,
        updated_at=now,
    )


def _comment(comment_id: str, post_id: str) -> Comment:
    now = datetime.now(UTC)
    return Comment(
        id=comment_id,
        post_id=post_id,
        content="local",
        author=AuthorRef(id="user-alice"),
        created_at=now,
        updated_at=now,
    )


async def _build_thread(store: ThreadStore, alice, bob):
    post = await store.create_post(alice, "Fair", "Sunday", Category.EVENTS)
    comment = await store.create_comment(bob, post.id, "Count me in")
    first = await store.create_reply(alice, post.id, comment.id, "Great")
    second = await store.create_reply(
        bob, post.id, comment.id, "See you", parent_reply_id=first.id
    )
    return post, comment, first, second


class TestApply:
    @pytest.mark.asyncio
    async def test_replays_store_events(self, store, publisher, alice, bob):
        post, comment, first, second = await _build_thread(store, alice, bob)
        await store.toggle_reaction(bob, EntityRef(post.id, comment.id, first.id), "like")
        await store.edit(alice, EntityRef(post.id, comment.id, first.id), "Great!")

        replica = ForumReplica()
        for event in publisher.events:
            assert replica.apply(_wire(event)) is True

        local = replica.posts[post.id]
        assert local.title == "Fair"
        local_comment = local.find_comment(comment.id)
        assert [r.id for r in local_comment.replies] == [first.id, second.id]
        reply = local_comment.find_reply(first.id)
        assert reply.likes == {bob.id}
        assert reply.content == "Great!"
        assert reply.is_edited is True

    @pytest.mark.asyncio
    async def test_duplicate_event_ids_are_ignored(self, store, publisher, alice, bob):
        await _build_thread(store, alice, bob)
        replica = ForumReplica()
        for event in publisher.events:
            replica.apply(event)
        assert not any(replica.apply(event) for event in publisher.events)

    @pytest.mark.asyncio
    async def test_redelivered_adds_are_idempotent(self, store, publisher, alice, bob):
        post, comment, _, _ = await _build_thread(store, alice, bob)
        replica = ForumReplica()
        for event in publisher.events:
            replica.apply(event)
        before = replica.posts[post.id].to_document()

        for event in publisher.events:
            replica.apply(dataclasses.replace(event, event_id=f"again-{event.event_id}"))

        assert replica.posts[post.id].to_document() == before

    @pytest.mark.asyncio
    async def test_reply_delete_cascades(self, store, publisher, alice, bob):
        post, comment, first, second = await _build_thread(store, alice, bob)
        replica = ForumReplica()
        for event in publisher.events:
            replica.apply(event)
        publisher.clear()

        await store.delete(alice, EntityRef(post.id, comment.id, first.id))
        (event,) = publisher.events
        assert replica.apply(_wire(event)) is True
        assert replica.posts[post.id].find_comment(comment.id).replies == []

    @pytest.mark.asyncio
    async def test_post_delete(self, store, publisher, alice, bob):
        post, _, _, _ = await _build_thread(store, alice, bob)
        replica = ForumReplica()
        for event in publisher.events:
            replica.apply(event)
        publisher.clear()

        await store.delete(alice, EntityRef(post.id))
        assert replica.apply(publisher.events[0]) is True
        assert replica.posts == {}

    def test_unknown_delete_is_noop(self):
        replica = ForumReplica()
        replica.load([_post("p1")])
        event = ForumEvent(
            type=EventType.COMMENT_DELETED,
            path=EntityPath("p1", "ghost"),
            data={"removed_ids": ["ghost"]},
        )
        assert replica.apply(event) is False
        assert replica.remove(EntityPath("missing")) == []
        assert list(replica.posts) == ["p1"]

    def test_category_filter(self):
        replica = ForumReplica(categories=["Events"])
        safety = ForumEvent(
            type=EventType.POST_CREATED,
            path=EntityPath("p1"),
            category="Safety",
            data={"post": _post("p1", Category.SAFETY).to_document()},
        )
        assert replica.apply(safety) is False
        assert replica.posts == {}

    def test_update_for_missing_post(self):
        replica = ForumReplica()
        event = ForumEvent(
            type=EventType.POST_UPDATED,
            path=EntityPath("p1"),
            data={"post": _post("p1").to_document()},
        )
        assert replica.apply(event) is False


class TestPendingEntities:
    def test_confirm_keeps_position(self):
        replica = ForumReplica()
        replica.load([_post("p1")])
        replica.add_post(_post("local-1"), Pending("local-1"))
        replica.add_post(_post("p3"))

        assert replica.is_pending("local-1")
        assert replica.confirm(EntityPath("local-1"), _post("p2")) is True
        assert list(replica.posts) == ["p1", "p2", "p3"]
        assert replica.tag_of("p2") == Confirmed("p2")
        assert replica.confirm(EntityPath("local-1"), _post("p2")) is False

    def test_confirmed_comment_keeps_local_replies(self):
        replica = ForumReplica()
        replica.load([_post("p1")])
        replica.add_comment(_comment("local-c", "p1"), Pending("local-c"))

        server = _comment("c1", "p1")
        assert replica.confirm(EntityPath("p1", "local-c"), server) is True
        assert [c.id for c in replica.posts["p1"].comments] == ["c1"]

    @pytest.mark.asyncio
    async def test_echo_adopted_by_client_ref(self, store, publisher, alice):
        post = await store.create_post(alice, "Fair", "Sunday", Category.EVENTS)
        replica = ForumReplica()
        replica.load([await store.get_post(post.id)])
        replica.add_comment(_comment("local-1", post.id), Pending("local-1"))
        publisher.clear()

        server = await store.create_comment(
            alice, post.id, "Count me in", client_ref="local-1"
        )
        (event,) = publisher.events
        assert event.client_ref == "local-1"

        assert replica.apply(_wire(event)) is True
        comments = replica.posts[post.id].comments
        assert [c.id for c in comments] == [server.id]
        assert comments[0].content == "Count me in"
        assert not replica.is_pending("local-1")
        assert replica.tag_of(server.id) == Confirmed(server.id)

    def test_remove_drops_pending_tags(self):
        replica = ForumReplica()
        replica.load([_post("p1")])
        replica.add_comment(_comment("local-1", "p1"), Pending("local-1"))
        assert replica.remove(EntityPath("p1", "local-1")) == ["local-1"]
        assert not replica.is_pending("local-1")
