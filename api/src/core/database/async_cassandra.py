"""Async Cassandra connection using cassandra-asyncio-driver.

The cassandra-asyncio-driver extends the standard cassandra-driver with a
``session.aexecute()`` coroutine. Forum threads and disputes are stored as one
JSON document per row, so every mutation of an aggregate (cascading deletes
included) is a single-partition write.
"""

import structlog
from cassandra.auth import PlainTextAuthProvider
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra_asyncio.cluster import Cluster

from src.config.settings import Settings, get_settings
from src.disputes.models import DISPUTES_TABLES_CQL
from src.forum.models import FORUM_TABLES_CQL


logger = structlog.get_logger(__name__)

DOCUMENT_TABLES_CQL = (*FORUM_TABLES_CQL, *DISPUTES_TABLES_CQL)


def replication_options(settings: Settings) -> str:
    """CQL replication map for the keyspace.

    Production spreads replicas over the configured datacenter; every other
    environment runs against a single node.
    """
    if settings.is_production:
        dc = settings.cassandra_datacenter
        factor = settings.cassandra_replication_factor
        return f"{{'class': 'NetworkTopologyStrategy', '{dc}': {factor}}}"
    return "{'class': 'SimpleStrategy', 'replication_factor': 1}"


class AsyncCassandraConnection:
    """Process-wide cluster and session holder."""

    _cluster: Cluster | None = None
    _session = None

    @classmethod
    def connect(cls, settings: Settings | None = None):
        """Open the cluster session, reusing an existing one.

        Raises:
            ConnectionError: If no contact point accepts the connection
        """
        if cls._session is not None:
            return cls._session

        settings = settings or get_settings()
        auth_provider = None
        if settings.cassandra_username and settings.cassandra_password:
            auth_provider = PlainTextAuthProvider(
                username=settings.cassandra_username,
                password=settings.cassandra_password,
            )

        cluster = Cluster(
            contact_points=settings.cassandra_hosts,
            port=settings.cassandra_port,
            auth_provider=auth_provider,
            protocol_version=settings.cassandra_protocol_version,
            load_balancing_policy=TokenAwarePolicy(
                DCAwareRoundRobinPolicy(local_dc=settings.cassandra_datacenter)
            ),
            connect_timeout=settings.cassandra_connect_timeout,
        )
        try:
            session = cluster.connect()
        except Exception as e:
            cluster.shutdown()
            logger.error(
                "cassandra_connection_failed",
                hosts=settings.cassandra_hosts,
                error=str(e),
            )
            raise ConnectionError(f"Failed to connect to Cassandra: {e}") from e

        session.default_timeout = settings.cassandra_request_timeout
        cls._cluster, cls._session = cluster, session
        logger.info(
            "cassandra_connected",
            hosts=settings.cassandra_hosts,
            port=settings.cassandra_port,
        )
        return session

    @classmethod
    def get_session(cls):
        return cls._session if cls._session is not None else cls.connect()

    @classmethod
    def disconnect(cls) -> None:
        if cls._session is not None:
            cls._session.shutdown()
            cls._session = None
        if cls._cluster is not None:
            cls._cluster.shutdown()
            cls._cluster = None
            logger.info("cassandra_disconnected")

    @classmethod
    def is_connected(cls) -> bool:
        return cls._session is not None and not cls._session.is_shutdown


def get_async_cassandra_session():
    return AsyncCassandraConnection.get_session()


async def create_schema(session, settings: Settings) -> None:
    """Create the keyspace and the forum and dispute document tables."""
    keyspace = settings.cassandra_keyspace
    await session.aexecute(
        f"CREATE KEYSPACE IF NOT EXISTS {keyspace} "
        f"WITH replication = {replication_options(settings)} "
        "AND durable_writes = true"
    )
    session.set_keyspace(keyspace)
    for cql in DOCUMENT_TABLES_CQL:
        await session.aexecute(cql.format(keyspace=keyspace))
    logger.info(
        "cassandra_schema_ready", keyspace=keyspace, tables=len(DOCUMENT_TABLES_CQL)
    )


async def init_async_cassandra():
    """Connect and make sure the schema exists.

    Returns:
        Session bound to the application keyspace, with aexecute() support
    """
    settings = get_settings()
    session = AsyncCassandraConnection.connect(settings)
    await create_schema(session, settings)
    return session


async def shutdown_async_cassandra() -> None:
    AsyncCassandraConnection.disconnect()
