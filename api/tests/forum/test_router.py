"""HTTP tests for the forum API."""

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def post(client: TestClient, alice_headers: dict[str, str]) -> dict:
    response = client.post(
        "/forum/create",
        json={
            "title": "Test",
            "content": "Hello @[Loft](p-1)",
            "category": "Events",
            "location": {"city": "Lisbon", "neighborhood": "Alfama"},
        },
        headers=alice_headers,
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def comment(client: TestClient, post: dict, alice_headers: dict[str, str]) -> dict:
    response = client.post(
        f"/forum/comment/{post['id']}", json={"content": "Hi"}, headers=alice_headers
    )
    assert response.status_code == 201
    return response.json()


class TestPosts:
    def test_create_post(self, post: dict) -> None:
        assert post["title"] == "Test"
        assert post["category"] == "Events"
        assert post["author"]["id"] == "user-alice"
        assert post["author"]["name"] == "Alice"
        assert post["mentions"] == ["p-1"]
        assert post["location"] == {"city": "Lisbon", "neighborhood": "Alfama"}
        assert post["comments"] == []

    def test_create_requires_title(
        self, client: TestClient, alice_headers: dict[str, str]
    ) -> None:
        response = client.post(
            "/forum/create", json={"content": "no title"}, headers=alice_headers
        )
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    def test_blank_content_rejected(
        self, client: TestClient, alice_headers: dict[str, str]
    ) -> None:
        response = client.post(
            "/forum/create", json={"title": "T", "content": "   "}, headers=alice_headers
        )
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    def test_get_post_counts_view(self, client: TestClient, post: dict) -> None:
        client.get(f"/forum/{post['id']}")
        response = client.get(f"/forum/{post['id']}")
        assert response.status_code == 200
        assert response.json()["view_count"] == 2

    def test_get_missing_post(self, client: TestClient) -> None:
        response = client.get("/forum/missing")
        assert response.status_code == 404
        body = response.json()
        assert body["error"] is True
        assert body["code"] == "not_found"
        assert body["message"] == "Post not found"

    def test_list_posts(self, client: TestClient, post: dict) -> None:
        response = client.get(
            "/forum", params={"category": "Events", "city": "lisbon", "searchTerm": "hello"}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["has_more"] is False
        assert data["posts"][0]["id"] == post["id"]

        empty = client.get("/forum", params={"category": "Safety"}).json()
        assert empty["total"] == 0

    def test_list_limit_validated(self, client: TestClient) -> None:
        assert client.get("/forum", params={"limit": 51}).status_code == 422

    def test_update_post(
        self, client: TestClient, post: dict, alice_headers: dict[str, str]
    ) -> None:
        response = client.put(
            f"/forum/{post['id']}",
            json={"title": "Renamed", "category": "Safety"},
            headers=alice_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["title"] == "Renamed"
        assert data["category"] == "Safety"
        assert data["is_edited"] is True

    def test_reported_category_rejected(
        self, client: TestClient, post: dict, alice_headers: dict[str, str]
    ) -> None:
        created = client.post(
            "/forum/create",
            json={"title": "Spam", "content": "Body", "category": "Reported"},
            headers=alice_headers,
        )
        assert created.status_code == 422
        assert created.json()["code"] == "invalid_content"

        updated = client.put(
            f"/forum/{post['id']}",
            json={"category": "Reported"},
            headers=alice_headers,
        )
        assert updated.status_code == 422
        assert updated.json()["code"] == "invalid_content"

    def test_update_by_stranger(
        self, client: TestClient, post: dict, bob_headers: dict[str, str]
    ) -> None:
        response = client.put(
            f"/forum/{post['id']}", json={"title": "Mine now"}, headers=bob_headers
        )
        assert response.status_code == 403
        assert response.json()["code"] == "forbidden"

    def test_delete_post_is_idempotent(
        self, client: TestClient, post: dict, alice_headers: dict[str, str]
    ) -> None:
        first = client.delete(f"/forum/{post['id']}", headers=alice_headers)
        second = client.delete(f"/forum/{post['id']}", headers=alice_headers)
        assert first.json()["message"] == "Post deleted"
        assert second.status_code == 200
        assert second.json()["message"] == "Post already deleted"
        assert client.get(f"/forum/{post['id']}").status_code == 404

    def test_stats_and_suggestions(self, client: TestClient, post: dict) -> None:
        stats = client.get("/forum/stats").json()
        assert stats["active_members"] == 1
        assert stats["daily_posts"] == 1
        assert stats["events_this_week"] == 1
        assert stats["trending_topics"][0]["id"] == post["id"]

        suggestions = client.get("/forum/search/suggestions", params={"q": "tes"})
        assert suggestions.json() == [{"id": post["id"], "title": "Test"}]


class TestModeration:
    def test_lock_blocks_comments(
        self,
        client: TestClient,
        post: dict,
        bob_headers: dict[str, str],
        moderator_headers: dict[str, str],
    ) -> None:
        lock = client.put(f"/forum/lock/{post['id']}", headers=moderator_headers)
        assert lock.json() == {"post_id": post["id"], "flag": "is_locked", "value": True}

        response = client.post(
            f"/forum/comment/{post['id']}", json={"content": "hey"}, headers=bob_headers
        )
        assert response.status_code == 423
        assert response.json()["code"] == "locked_or_closed"

    def test_pin(
        self, client: TestClient, post: dict, moderator_headers: dict[str, str]
    ) -> None:
        response = client.put(f"/forum/pin/{post['id']}", headers=moderator_headers)
        assert response.json()["value"] is True
        assert client.get(f"/forum/{post['id']}").json()["is_pinned"] is True

    def test_report_twice(
        self, client: TestClient, post: dict, bob_headers: dict[str, str]
    ) -> None:
        first = client.post(
            f"/forum/report/{post['id']}", json={"reason": "spam"}, headers=bob_headers
        )
        assert first.status_code == 201
        assert first.json()["report_count"] == 1

        second = client.post(f"/forum/report/{post['id']}", headers=bob_headers)
        assert second.status_code == 409
        assert second.json()["code"] == "already_reported"

        reported = client.get("/forum", params={"category": "Reported"}).json()
        assert reported["total"] == 1


class TestCommentsAndReplies:
    def test_reply_tree(
        self,
        client: TestClient,
        post: dict,
        comment: dict,
        alice_headers: dict[str, str],
        bob_headers: dict[str, str],
    ) -> None:
        base = f"/forum/comment/{post['id']}/{comment['id']}"
        first = client.post(
            f"{base}/reply", json={"content": "Hello"}, headers=bob_headers
        ).json()
        second = client.post(
            f"{base}/reply",
            json={"content": "Hi back", "parentReplyId": first["id"]},
            headers=alice_headers,
        ).json()
        assert second["parent_reply_id"] == first["id"]
        assert second["reply_to_user"] == "user-bob"

        thread = client.get(f"{base}/thread").json()
        assert thread["total"] == 2
        assert thread["nodes"][0]["reply"]["id"] == first["id"]
        assert thread["nodes"][0]["children"][0]["reply"]["id"] == second["id"]

        below = client.get(f"{base}/thread", params={"root": first["id"]}).json()
        assert [n["reply"]["id"] for n in below["nodes"]] == [second["id"]]

    def test_unknown_parent(
        self,
        client: TestClient,
        post: dict,
        comment: dict,
        alice_headers: dict[str, str],
    ) -> None:
        response = client.post(
            f"/forum/comment/{post['id']}/{comment['id']}/reply",
            json={"content": "x", "parent_reply_id": "ghost"},
            headers=alice_headers,
        )
        assert response.status_code == 422
        assert response.json()["code"] == "invalid_parent"

    def test_comment_reactions(
        self,
        client: TestClient,
        post: dict,
        comment: dict,
        bob_headers: dict[str, str],
    ) -> None:
        base = f"/forum/comment/{post['id']}/{comment['id']}"
        liked = client.put(f"{base}/like", headers=bob_headers).json()
        assert liked["likes"] == ["user-bob"]

        disliked = client.put(f"{base}/dislike", headers=bob_headers).json()
        assert disliked["likes"] == []
        assert disliked["dislikes"] == ["user-bob"]

    def test_post_reactions(
        self, client: TestClient, post: dict, bob_headers: dict[str, str]
    ) -> None:
        client.put(f"/forum/like/{post['id']}", headers=bob_headers)
        response = client.put(f"/forum/like/{post['id']}", headers=bob_headers)
        assert response.json()["likes"] == []

    def test_edit_and_delete_comment(
        self,
        client: TestClient,
        post: dict,
        comment: dict,
        alice_headers: dict[str, str],
        bob_headers: dict[str, str],
    ) -> None:
        base = f"/forum/comment/{post['id']}/{comment['id']}"
        assert (
            client.put(base, json={"content": "x"}, headers=bob_headers).status_code
            == 403
        )

        edited = client.put(base, json={"content": "Edited"}, headers=alice_headers)
        assert edited.json()["content"] == "Edited"
        assert edited.json()["is_edited"] is True

        deleted = client.delete(base, headers=alice_headers)
        assert deleted.json()["message"] == "Comment deleted"
        assert client.get(f"/forum/{post['id']}").json()["comments"] == []

    def test_reply_edit_delete_react_report(
        self,
        client: TestClient,
        post: dict,
        comment: dict,
        alice_headers: dict[str, str],
        bob_headers: dict[str, str],
    ) -> None:
        base = f"/forum/comment/{post['id']}/{comment['id']}/reply"
        reply = client.post(base, json={"content": "r"}, headers=alice_headers).json()
        url = f"{base}/{reply['id']}"

        assert client.put(url, json={"content": "r2"}, headers=alice_headers).json()[
            "content"
        ] == "r2"
        assert client.put(f"{url}/like", headers=bob_headers).json()["likes"] == [
            "user-bob"
        ]
        assert client.post(f"{url}/report", headers=bob_headers).status_code == 201
        assert client.delete(url, headers=alice_headers).json()["message"] == (
            "Reply deleted"
        )
        assert client.delete(url, headers=alice_headers).json()["message"] == (
            "Reply already deleted"
        )

    def test_client_ref_accepted(
        self, client: TestClient, post: dict, alice_headers: dict[str, str]
    ) -> None:
        response = client.post(
            f"/forum/comment/{post['id']}",
            json={"content": "optimistic", "clientRef": "local-1"},
            headers={**alice_headers, "X-Session-ID": "s-1"},
        )
        assert response.status_code == 201
        assert response.headers["X-Session-ID"] == "s-1"
        assert response.headers["X-Request-ID"]
