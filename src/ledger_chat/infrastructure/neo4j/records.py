"""Read a user's products, sales and debts from Neo4j."""

from typing import Any, LiteralString

from neo4j import AsyncSession
from neo4j.exceptions import Neo4jError, ServiceUnavailable, SessionExpired
from pydantic import ValidationError

from ledger_chat.core import ErrorCode, ErrorLevel
from ledger_chat.core.config import settings
from ledger_chat.core.decorators import with_error_handling, with_session
from ledger_chat.core.errors import RecordFetchError
from ledger_chat.core.logging import get_logger
from ledger_chat.domain.models import Debt, Product, Sale, UserRecordSet

logger = get_logger(__name__)

USER_EXISTS_QUERY: LiteralString = """
MATCH (u:User {id: $user_id})
RETURN u.id AS id
"""

PRODUCTS_QUERY: LiteralString = """
MATCH (:User {id: $user_id})-[:OWNS]->(p:Product)
RETURN p {.*} AS record
ORDER BY p.created_at DESC
"""

SALES_QUERY: LiteralString = """
MATCH (:User {id: $user_id})-[:OWNS]->(s:Sale)
OPTIONAL MATCH (s)-[:OF_PRODUCT]->(p:Product)
RETURN s {.*, product_id: coalesce(s.product_id, p.id), product_name: coalesce(s.product_name, p.name)} AS record
ORDER BY s.created_at DESC
LIMIT $window
"""

DEBTS_QUERY: LiteralString = """
MATCH (:User {id: $user_id})-[:OWNS]->(d:Debt)
RETURN d {.*} AS record
ORDER BY d.created_at DESC
LIMIT $window
"""


def _to_native(record: dict[str, Any]) -> dict[str, Any]:
    """Convert neo4j temporal values to their Python equivalents."""
    return {key: value.to_native() if hasattr(value, "to_native") else value for key, value in record.items()}


class Neo4jRecordSource:
    """Record source backed by the business graph.

    Products are read in full. Sales and debts are limited to the most recent
    ``record_window`` entries, newest first.
    """

    def __init__(self, driver: Any, record_window: int | None = None) -> None:
        self.driver = driver
        self.record_window = record_window or settings.record_window

    async def _fetch(self, session: AsyncSession, query: LiteralString, user_id: str) -> list[dict[str, Any]]:
        result = await session.run(query, parameters={"user_id": user_id, "window": self.record_window})
        return [_to_native(record["record"]) async for record in result]

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    @with_session()
    async def fetch_user_records(self, session: AsyncSession, user_id: str) -> UserRecordSet:
        """Fetch a user's records.

        Raises:
            RecordFetchError: If the user does not exist, the database is
                unreachable or a stored record is malformed
        """
        details = {"source": "Neo4jRecordSource", "operation": "fetch_user_records", "user_id": user_id}
        try:
            result = await session.run(USER_EXISTS_QUERY, parameters={"user_id": user_id})
            if await result.single(strict=False) is None:
                raise RecordFetchError(
                    message=f"User {user_id} not found",
                    details=details,
                    code=ErrorCode.USER_NOT_FOUND,
                )

            records = UserRecordSet(
                user_id=user_id,
                products=[Product.model_validate(r) for r in await self._fetch(session, PRODUCTS_QUERY, user_id)],
                sales=[Sale.model_validate(r) for r in await self._fetch(session, SALES_QUERY, user_id)],
                debts=[Debt.model_validate(r) for r in await self._fetch(session, DEBTS_QUERY, user_id)],
            )
        except (ServiceUnavailable, SessionExpired) as e:
            raise RecordFetchError(message=f"Record store unavailable: {e!s}", details=details) from e
        except Neo4jError as e:
            raise RecordFetchError(message=f"Record query failed: {e!s}", details=details) from e
        except ValidationError as e:
            raise RecordFetchError(message=f"Malformed record for user {user_id}: {e!s}", details=details) from e

        logger.info(
            "Fetched user records",
            user_id=user_id,
            products=len(records.products),
            sales=len(records.sales),
            debts=len(records.debts),
        )
        return records
