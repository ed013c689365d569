"""JSON document persistence for aggregates.

An aggregate (a post with its whole comment/reply tree, or a dispute) is
stored as a single JSON document keyed by id. Writing the whole document at
once keeps cascading deletes atomic: there is no intermediate state where a
comment is gone but its replies are still stored somewhere else.
"""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Generic, Protocol, TypeVar

import orjson
import structlog


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = structlog.get_logger(__name__)

T = TypeVar("T")


class DocumentRepository(Protocol):
    async def get(self, doc_id: str) -> dict[str, Any] | None: ...

    async def save(self, doc_id: str, document: dict[str, Any]) -> None: ...

    async def delete(self, doc_id: str) -> bool: ...

    async def list_all(self) -> list[dict[str, Any]]: ...


class InMemoryDocumentRepository:
    """Process-local repository used in development and tests.

    Documents are kept serialized so callers never share mutable state with
    the stored copy.
    """

    def __init__(self) -> None:
        self._documents: dict[str, bytes] = {}

    async def get(self, doc_id: str) -> dict[str, Any] | None:
        raw = self._documents.get(doc_id)
        return orjson.loads(raw) if raw is not None else None

    async def save(self, doc_id: str, document: dict[str, Any]) -> None:
        self._documents[doc_id] = orjson.dumps(document)

    async def delete(self, doc_id: str) -> bool:
        return self._documents.pop(doc_id, None) is not None

    async def list_all(self) -> list[dict[str, Any]]:
        return [orjson.loads(raw) for raw in self._documents.values()]

    def __len__(self) -> int:
        return len(self._documents)


class CassandraDocumentRepository:
    """Documents stored as TEXT in a ``(id, document, updated_at)`` table."""

    def __init__(self, session: "Session", keyspace: str, table: str):
        self.session = session
        self.keyspace = keyspace
        self.table = table
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._get_stmt = self.session.prepare(
            f"SELECT document FROM {self.keyspace}.{self.table} WHERE id = ?"
        )
        self._save_stmt = self.session.prepare(
            f"""
            INSERT INTO {self.keyspace}.{self.table} (id, document, updated_at)
            VALUES (?, ?, ?)
            """
        )
        self._delete_stmt = self.session.prepare(
            f"DELETE FROM {self.keyspace}.{self.table} WHERE id = ? IF EXISTS"
        )
        self._list_stmt = self.session.prepare(
            f"SELECT document FROM {self.keyspace}.{self.table}"
        )

    async def get(self, doc_id: str) -> dict[str, Any] | None:
        result = await self.session.aexecute(self._get_stmt, [doc_id])
        row = result.one()
        return orjson.loads(row.document) if row else None

    async def save(self, doc_id: str, document: dict[str, Any]) -> None:
        await self.session.aexecute(
            self._save_stmt,
            [doc_id, orjson.dumps(document).decode(), datetime.now(UTC)],
        )

    async def delete(self, doc_id: str) -> bool:
        result = await self.session.aexecute(self._delete_stmt, [doc_id])
        return bool(result.was_applied)

    async def list_all(self) -> list[dict[str, Any]]:
        result = await self.session.aexecute(self._list_stmt)
        return [orjson.loads(row.document) for row in result]


class AggregateRepository(Generic[T]):
    """Typed view over a DocumentRepository."""

    def __init__(
        self,
        documents: DocumentRepository,
        to_document: Callable[[T], dict[str, Any]],
        from_document: Callable[[dict[str, Any]], T],
        id_of: Callable[[T], str],
    ):
        self.documents = documents
        self._to_document = to_document
        self._from_document = from_document
        self._id_of = id_of

    async def get(self, doc_id: str) -> T | None:
        document = await self.documents.get(doc_id)
        return self._from_document(document) if document is not None else None

    async def save(self, aggregate: T) -> None:
        await self.documents.save(self._id_of(aggregate), self._to_document(aggregate))

    async def delete(self, doc_id: str) -> bool:
        return await self.documents.delete(doc_id)

    async def list_all(self) -> list[T]:
        return [self._from_document(doc) for doc in await self.documents.list_all()]
