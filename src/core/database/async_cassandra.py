"""Async Cassandra session for Stillpoint.

One process-wide cluster/session pair. Queries go through the
cassandra-asyncio-driver ``session.aexecute()``; connecting and switching
keyspace stay synchronous.
"""

import structlog
from cassandra.auth import PlainTextAuthProvider
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra_asyncio.cluster import Cluster

from src.config.settings import get_settings


logger = structlog.get_logger(__name__)


class AsyncCassandraConnection:
    """Holds the shared cluster and session."""

    _cluster: Cluster | None = None
    _session = None

    @classmethod
    def connect(cls):
        """Connect to the configured cluster, reusing an open session.

        Raises:
            ConnectionError: If no contact point can be reached
        """
        if cls._session is not None:
            return cls._session

        settings = get_settings()

        auth_provider = None
        if settings.cassandra_username and settings.cassandra_password:
            auth_provider = PlainTextAuthProvider(
                username=settings.cassandra_username,
                password=settings.cassandra_password,
            )

        cls._cluster = Cluster(
            contact_points=settings.cassandra_hosts,
            port=settings.cassandra_port,
            auth_provider=auth_provider,
            protocol_version=settings.cassandra_protocol_version,
            load_balancing_policy=TokenAwarePolicy(DCAwareRoundRobinPolicy()),
            connect_timeout=settings.cassandra_connect_timeout,
        )

        try:
            cls._session = cls._cluster.connect()
        except Exception as e:
            logger.error("async_cassandra_connection_failed", error=str(e))
            raise ConnectionError(f"Failed to connect to Cassandra: {e}") from e

        logger.info(
            "async_cassandra_connected",
            hosts=settings.cassandra_hosts,
            port=settings.cassandra_port,
        )
        return cls._session

    @classmethod
    def disconnect(cls) -> None:
        if cls._session is not None:
            cls._session.shutdown()
            cls._session = None
        if cls._cluster is not None:
            cls._cluster.shutdown()
            cls._cluster = None
        logger.info("async_cassandra_closed")

    @classmethod
    def is_connected(cls) -> bool:
        return cls._session is not None and not cls._session.is_shutdown


def table_groups() -> dict[str, list[str]]:
    """CQL templates per domain, in creation order.

    Imported on demand: the domain models depend on ``src.core``, so loading
    them while ``src.core`` initializes would be circular.
    """
    from src.access.models import ACCESS_TABLES_CQL
    from src.content.models import CONTENT_TABLES_CQL
    from src.courses.models import COURSES_TABLES_CQL
    from src.payments.models import PAYMENTS_TABLES_CQL
    from src.progress.models import PROGRESS_TABLES_CQL

    return {
        "courses": COURSES_TABLES_CQL,
        "progress": PROGRESS_TABLES_CQL,
        "access": ACCESS_TABLES_CQL,
        "payments": PAYMENTS_TABLES_CQL,
        "content": CONTENT_TABLES_CQL,
    }


async def init_async_keyspace(session, keyspace: str) -> None:
    settings = get_settings()

    if settings.is_production:
        replication = "'class': 'NetworkTopologyStrategy', 'datacenter1': 3"
    else:
        replication = "'class': 'SimpleStrategy', 'replication_factor': 1"

    await session.aexecute(
        f"CREATE KEYSPACE IF NOT EXISTS {keyspace} "
        f"WITH replication = {{{replication}}} AND durable_writes = true"
    )
    logger.info("async_keyspace_created", keyspace=keyspace)


async def init_async_tables(session, keyspace: str, templates: list[str]) -> None:
    for cql_template in templates:
        await session.aexecute(cql_template.format(keyspace=keyspace))


async def init_async_cassandra():
    """Connect, then create the keyspace and every table if missing."""
    settings = get_settings()
    keyspace = settings.cassandra_keyspace

    session = AsyncCassandraConnection.connect()
    await init_async_keyspace(session, keyspace)
    session.set_keyspace(keyspace)

    for group, templates in table_groups().items():
        await init_async_tables(session, keyspace, templates)
        logger.info("async_tables_created", keyspace=keyspace, group=group)

    logger.info("async_cassandra_initialized", keyspace=keyspace)
    return session


async def shutdown_async_cassandra() -> None:
    AsyncCassandraConnection.disconnect()
