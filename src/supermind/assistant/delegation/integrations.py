"""
Integration store adapters.

Resolve which upstream connection a user has for a connector. The
PostgreSQL store reads the ``user_integrations`` table; the in-memory
store backs tests and local development.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from ..domain.entities import Integration
from ..domain.ports import IIntegrationStore

logger = logging.getLogger(__name__)


class InMemoryIntegrationStore(IIntegrationStore):
    """Integration records held in a dict keyed by (user_id, connector)."""

    def __init__(self, integrations: Iterable[Integration] = ()):
        self._records: dict[tuple[str, str], Integration] = {}
        for integration in integrations:
            self.put(integration)

    def put(self, integration: Integration) -> None:
        self._records[(integration.user_id, integration.connector)] = integration

    def remove(self, user_id: str, connector: str) -> None:
        self._records.pop((user_id, connector), None)

    async def get_integration(
        self, user_id: str, connector: str
    ) -> Optional[Integration]:
        return self._records.get((user_id, connector))


class PostgresIntegrationStore(IIntegrationStore):
    """Integration records stored in PostgreSQL.

    Usage:
        store = PostgresIntegrationStore(db_pool)
        integration = await store.get_integration("user-1", "gmail")
    """

    def __init__(self, pool):
        """Initialize the store.

        Args:
            pool: asyncpg connection pool
        """
        self.pool = pool

    async def get_integration(
        self, user_id: str, connector: str
    ) -> Optional[Integration]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT connection_id, connection_status
                FROM user_integrations
                WHERE user_id = $1 AND connector = $2
                """,
                user_id,
                connector,
            )

        if not row:
            return None

        return Integration(
            user_id=user_id,
            connector=connector,
            connection_id=row["connection_id"],
            status=row["connection_status"],
        )
