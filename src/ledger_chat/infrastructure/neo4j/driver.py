"""Neo4j driver and connection management."""

from collections.abc import AsyncGenerator

from neo4j import AsyncDriver, AsyncGraphDatabase

from ledger_chat.core import ErrorLevel
from ledger_chat.core.config import settings
from ledger_chat.core.decorators import with_error_handling
from ledger_chat.core.logging import get_logger

logger = get_logger(__name__)


@with_error_handling(error_level=ErrorLevel.ERROR)
async def create_neo4j_driver(
    max_connection_pool_size: int | None = None,
    max_connection_lifetime: int | None = None,
) -> AsyncGenerator[AsyncDriver]:
    """Create a Neo4j driver with proper resource management.

    It establishes a connection to Neo4j, yields the driver and closes it when
    the generator is closed.

    Args:
        max_connection_pool_size: Maximum size of the connection pool
        max_connection_lifetime: Maximum lifetime of connections in seconds

    Yields:
        AsyncDriver: Connected Neo4j driver
    """
    pool_size = max_connection_pool_size or 50
    conn_lifetime = max_connection_lifetime or 3600

    logger.info(
        "Creating Neo4j driver",
        extra={
            "uri": settings.neo4j_uri,
            "pool_size": pool_size,
            "connection_lifetime": conn_lifetime,
        },
    )

    driver = AsyncGraphDatabase.driver(
        settings.neo4j_uri,
        auth=(
            settings.neo4j_user,
            settings.neo4j_password.get_secret_value(),
        ),
        max_connection_pool_size=pool_size,
        max_connection_lifetime=conn_lifetime,
    )

    try:
        await driver.verify_connectivity()
        logger.info("Neo4j connection established")
        yield driver
    finally:
        await driver.close()
        logger.info("Neo4j driver closed")
