"""Tests for Cassandra schema setup (requires the ``cassandra`` extra)."""

from unittest.mock import AsyncMock, MagicMock

import pytest


pytest.importorskip("cassandra_asyncio")

from src.config.settings import Settings  # noqa: E402
from src.core.database.async_cassandra import (  # noqa: E402
    DOCUMENT_TABLES_CQL,
    create_schema,
    replication_options,
)


def test_single_node_replication_outside_production():
    settings = Settings(environment="development")
    assert replication_options(settings) == (
        "{'class': 'SimpleStrategy', 'replication_factor': 1}"
    )


def test_production_replication_uses_datacenter():
    settings = Settings(
        environment="production",
        cassandra_datacenter="eu-west",
        cassandra_replication_factor=5,
    )
    assert replication_options(settings) == (
        "{'class': 'NetworkTopologyStrategy', 'eu-west': 5}"
    )


@pytest.mark.asyncio
async def test_create_schema_creates_keyspace_then_tables():
    session = MagicMock()
    session.aexecute = AsyncMock()
    settings = Settings(environment="testing", cassandra_keyspace="agora_test")

    await create_schema(session, settings)

    statements = [call.args[0] for call in session.aexecute.await_args_list]
    assert statements[0].startswith("CREATE KEYSPACE IF NOT EXISTS agora_test")
    assert len(statements) == 1 + len(DOCUMENT_TABLES_CQL)
    assert all("agora_test" in cql for cql in statements[1:])
    session.set_keyspace.assert_called_once_with("agora_test")
