"""Neo4j driver and connection management.

Async-first driver lifecycle plus a small query executor that maps driver
failures onto the application error taxonomy.
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, Generic, LiteralString, TypeVar, cast

from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncManagedTransaction
from neo4j.exceptions import DriverError, Neo4jError, ServiceUnavailable

from knowledge_search.core import ErrorCode, ErrorLevel
from knowledge_search.core.base import DatabaseErrorDetails
from knowledge_search.core.config import settings
from knowledge_search.core.decorators import with_error_handling
from knowledge_search.core.errors import ServiceError
from knowledge_search.core.logging import get_logger
from knowledge_search.infrastructure.neo4j.queries import IndexQueries

logger = get_logger(__name__)

T = TypeVar("T")


@asynccontextmanager
async def create_neo4j_driver(
    uri: str | None = None,
    max_connection_pool_size: int = 50,
    max_connection_lifetime: int = 3600,
) -> AsyncIterator[AsyncDriver]:
    """Open a verified Neo4j driver and close it on exit.

    Raises:
        ServiceError: If the database cannot be reached
    """
    uri = uri or settings.neo4j_uri
    logger.info(
        "Creating Neo4j driver",
        extra={
            "uri": uri,
            "pool_size": max_connection_pool_size,
            "connection_lifetime": max_connection_lifetime,
        },
    )

    driver = AsyncGraphDatabase.driver(
        uri,
        auth=(settings.neo4j_user, settings.neo4j_password.get_secret_value()),
        max_connection_pool_size=max_connection_pool_size,
        max_connection_lifetime=max_connection_lifetime,
    )
    try:
        await driver.verify_connectivity()
    except (ServiceUnavailable, DriverError, Neo4jError) as e:
        await driver.close()
        raise ServiceError(
            message=f"Could not connect to Neo4j: {e!s}",
            code=ErrorCode.DB_CONNECTION,
            details=DatabaseErrorDetails(
                source="neo4j_driver",
                operation="verify_connectivity",
                service_name="Neo4j",
                endpoint=uri,
            ),
        ) from e
    logger.info("Neo4j connection established")

    try:
        yield driver
    finally:
        await driver.close()
        logger.info("Neo4j driver closed")


def _query_error(e: Exception, operation: str, query: str) -> ServiceError:
    code = ErrorCode.DB_CONNECTION if isinstance(e, ServiceUnavailable) else ErrorCode.DB_QUERY
    return ServiceError(
        message=f"Neo4j {operation} failed: {e!s}",
        code=code,
        details=DatabaseErrorDetails(
            source="Neo4jQuery",
            operation=operation,
            service_name="Neo4j",
            query_type=query.strip().split(None, 1)[0] if query.strip() else None,
        ),
    )


class Neo4jQuery(Generic[T]):
    """Neo4j query executor with typed results."""

    def __init__(self, driver: AsyncDriver, database: str | None = None) -> None:
        self.driver: AsyncDriver = driver
        self.database = database if database is not None else settings.neo4j_database

    def _session(self):
        return self.driver.session(database=self.database) if self.database else self.driver.session()

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def execute_list(
        self,
        query: LiteralString,
        params: dict[str, Any] | None = None,
        result_transformer: Callable[[Any], T] | None = None,
    ) -> list[T]:
        """Execute a read query and return every record, optionally transformed.

        Raises:
            ServiceError: If query execution fails
        """
        logger.debug("Executing Neo4j query for result list", extra={"query": query})
        try:
            async with self._session() as session:
                result = await session.run(query, parameters=params or {})
                records = [record async for record in result]
        except (Neo4jError, DriverError) as e:
            raise _query_error(e, "execute_list", query) from e

        if result_transformer:
            return [result_transformer(record) for record in records]
        return cast("list[T]", records)

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def execute_write(
        self,
        work: Callable[[AsyncManagedTransaction], Awaitable[T]],
    ) -> T:
        """Run ``work`` inside one managed write transaction.

        Everything ``work`` does commits together or not at all.
        """
        try:
            async with self._session() as session:
                return await session.execute_write(work)
        except (Neo4jError, DriverError) as e:
            raise _query_error(e, "execute_write", getattr(work, "__name__", "")) from e


async def ensure_indexes(driver: AsyncDriver, dimensions: int = 1024, database: str | None = None) -> None:
    """Create the fulltext and vector indexes search relies on, if missing."""

    executor: Neo4jQuery[Any] = Neo4jQuery(driver, database)
    for query, params in IndexQueries.all(dimensions):
        await executor.execute_list(query, params)
    logger.info("Search indexes ensured", extra={"dimensions": dimensions})
