"""Tests for JSON document repositories."""

from dataclasses import dataclass
from unittest.mock import AsyncMock, Mock

import orjson
import pytest

from src.core.repository import (
    AggregateRepository,
    CassandraDocumentRepository,
    InMemoryDocumentRepository,
)


@pytest.fixture
def mock_session():
    """Mock Cassandra session with awaitable aexecute."""
    session = Mock()
    session.prepare = Mock(side_effect=lambda query: query)
    session.aexecute = AsyncMock(return_value=Mock())
    return session


@pytest.fixture
def repository(mock_session) -> CassandraDocumentRepository:
    return CassandraDocumentRepository(mock_session, "agora", "forum_posts")


class TestInMemoryDocumentRepository:
    @pytest.mark.asyncio
    async def test_round_trip(self):
        repo = InMemoryDocumentRepository()
        await repo.save("a", {"id": "a", "tags": ["x"]})
        assert await repo.get("a") == {"id": "a", "tags": ["x"]}
        assert await repo.get("missing") is None
        assert len(repo) == 1

    @pytest.mark.asyncio
    async def test_stored_copy_is_isolated(self):
        repo = InMemoryDocumentRepository()
        document = {"id": "a", "tags": ["x"]}
        await repo.save("a", document)
        document["tags"].append("y")

        loaded = await repo.get("a")
        loaded["tags"].append("z")
        assert await repo.get("a") == {"id": "a", "tags": ["x"]}

    @pytest.mark.asyncio
    async def test_delete(self):
        repo = InMemoryDocumentRepository()
        await repo.save("a", {"id": "a"})
        assert await repo.delete("a") is True
        assert await repo.delete("a") is False
        assert await repo.list_all() == []


class TestCassandraDocumentRepository:
    def test_statements_prepared_once(self, repository, mock_session):
        assert mock_session.prepare.call_count == 4
        assert "agora.forum_posts" in repository._get_stmt

    @pytest.mark.asyncio
    async def test_get(self, repository, mock_session):
        result = Mock()
        result.one.return_value = Mock(document='{"id":"p1"}')
        mock_session.aexecute.return_value = result

        assert await repository.get("p1") == {"id": "p1"}
        mock_session.aexecute.assert_awaited_once_with(repository._get_stmt, ["p1"])

    @pytest.mark.asyncio
    async def test_get_missing(self, repository, mock_session):
        result = Mock()
        result.one.return_value = None
        mock_session.aexecute.return_value = result
        assert await repository.get("p1") is None

    @pytest.mark.asyncio
    async def test_save_serializes_document(self, repository, mock_session):
        await repository.save("p1", {"id": "p1", "likes": ["u1"]})

        stmt, params = mock_session.aexecute.await_args.args
        assert stmt == repository._save_stmt
        assert params[0] == "p1"
        assert orjson.loads(params[1]) == {"id": "p1", "likes": ["u1"]}

    @pytest.mark.asyncio
    async def test_delete_reports_applied(self, repository, mock_session):
        mock_session.aexecute.return_value = Mock(was_applied=False)
        assert await repository.delete("p1") is False

    @pytest.mark.asyncio
    async def test_list_all(self, repository, mock_session):
        mock_session.aexecute.return_value = [
            Mock(document='{"id":"a"}'),
            Mock(document='{"id":"b"}'),
        ]
        assert await repository.list_all() == [{"id": "a"}, {"id": "b"}]


@dataclass
class Note:
    id: str
    text: str


class TestAggregateRepository:
    @pytest.mark.asyncio
    async def test_typed_round_trip(self):
        notes = AggregateRepository(
            InMemoryDocumentRepository(),
            to_document=lambda n: {"id": n.id, "text": n.text},
            from_document=lambda d: Note(**d),
            id_of=lambda n: n.id,
        )
        await notes.save(Note("n1", "hello"))

        assert await notes.get("n1") == Note("n1", "hello")
        assert await notes.list_all() == [Note("n1", "hello")]
        assert await notes.delete("n1") is True
        assert await notes.get("n1") is None
