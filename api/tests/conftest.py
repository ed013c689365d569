"""Shared fixtures.

The application runs fully in memory: no Redis, no Cassandra, no log files.
"""

import os


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ["REDIS_ENABLED"] = "false"
os.environ["CASSANDRA_ENABLED"] = "false"
os.environ["LOG_TO_FILE"] = "false"
os.environ["LOG_REQUESTS"] = "false"

from collections.abc import Callable, Iterator  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from src.auth.permissions import UserRole  # noqa: E402
from src.auth.schemas import Actor  # noqa: E402
from src.auth.security import create_access_token  # noqa: E402
from src.core.repository import (  # noqa: E402
    AggregateRepository,
    InMemoryDocumentRepository,
)
from src.disputes.models import Dispute  # noqa: E402
from src.disputes.service import DisputeService  # noqa: E402
from src.forum.models import Post  # noqa: E402
from src.forum.service import ForumService  # noqa: E402
from src.forum.store import ThreadStore  # noqa: E402
from src.realtime.events import ForumEvent  # noqa: E402


class RecordingPublisher:
    """EventPublisher that keeps every event for assertions."""

    def __init__(self) -> None:
        self.events: list[ForumEvent] = []

    def publish(self, event: ForumEvent) -> bool:
        self.events.append(event)
        return True

    def types(self) -> list[str]:
        return [event.type.value for event in self.events]

    def clear(self) -> None:
        self.events.clear()


# ==============================================================================
# Domain fixtures
# ==============================================================================


@pytest.fixture
def alice() -> Actor:
    return Actor(id="user-alice", name="Alice")


@pytest.fixture
def bob() -> Actor:
    return Actor(id="user-bob", name="Bob")


@pytest.fixture
def moderator() -> Actor:
    return Actor(id="user-mod", name="Mod", role=UserRole.ADMIN)


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def post_repository() -> AggregateRepository[Post]:
    return AggregateRepository(
        InMemoryDocumentRepository(),
        Post.to_document,
        Post.from_document,
        lambda post: post.id,
    )


@pytest.fixture
def store(
    post_repository: AggregateRepository[Post], publisher: RecordingPublisher
) -> ThreadStore:
    return ThreadStore(post_repository, publisher=publisher, max_reply_depth=5)


@pytest.fixture
def forum_service(store: ThreadStore) -> ForumService:
    return ForumService(store)


@pytest.fixture
def dispute_service() -> DisputeService:
    return DisputeService(
        AggregateRepository(
            InMemoryDocumentRepository(),
            Dispute.to_document,
            Dispute.from_document,
            lambda dispute: dispute.id,
        )
    )


# ==============================================================================
# HTTP fixtures
# ==============================================================================


@pytest.fixture
def client() -> Iterator[TestClient]:
    """Test client with the application lifespan running."""
    from src.main import create_app

    with TestClient(create_app()) as test_client:
        yield test_client


@pytest.fixture
def make_token() -> Callable[..., str]:
    def _make(user_id: str, role: str = "user", name: str = "") -> str:
        return create_access_token({"sub": user_id, "role": role, "name": name})

    return _make


@pytest.fixture
def alice_headers(make_token: Callable[..., str]) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token('user-alice', name='Alice')}"}


@pytest.fixture
def bob_headers(make_token: Callable[..., str]) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token('user-bob', name='Bob')}"}


@pytest.fixture
def moderator_headers(make_token: Callable[..., str]) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token('user-mod', 'admin', 'Mod')}"}
