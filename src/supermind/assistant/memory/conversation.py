"""
Conversation Store Implementation.

Persists the committed user/assistant turns of each chat session in
PostgreSQL so an orchestrator can rebuild its history at session start.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

from ..domain.entities import MessageRole, Turn, UserContext
from ..domain.ports import IConversationStore

logger = logging.getLogger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS chat_messages (
    id BIGSERIAL PRIMARY KEY,
    user_id TEXT NOT NULL,
    session_id TEXT NOT NULL,
    position INTEGER NOT NULL,
    role TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
    content TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (user_id, session_id, position)
);
"""


class IAsyncDBPool(Protocol):
    """Protocol for async database pool."""

    def acquire(self): ...
    async def execute(self, query: str, *args) -> str: ...
    async def fetch(self, query: str, *args) -> list[Any]: ...
    async def fetchrow(self, query: str, *args) -> Optional[Any]: ...


class ConversationStore(IConversationStore):
    """PostgreSQL-based store of chat turns.

    Every query filters by both user_id and session_id, so one identity
    can never read another identity's session.

    Usage:
        store = ConversationStore(db_pool)
        await store.ensure_schema()

        await store.append_turns(context, [user_turn, assistant_turn])
        turns = await store.load_turns(context)
    """

    def __init__(self, db_pool: IAsyncDBPool):
        """Initialize the conversation store.

        Args:
            db_pool: Async database connection pool
        """
        self.db = db_pool

    @staticmethod
    def _require_session(context: UserContext) -> str:
        if not context.session_id:
            raise ValueError("session_id is required for conversation storage")
        return context.session_id

    async def ensure_schema(self) -> None:
        """Create the chat_messages table if it does not exist."""
        async with self.db.acquire() as conn:
            await conn.execute(SCHEMA_SQL)

    async def load_turns(self, context: UserContext) -> list[Turn]:
        """Load the persisted turns of a session in order.

        Args:
            context: User context carrying the session id

        Returns:
            User and assistant turns, oldest first
        """
        session_id = self._require_session(context)
        async with self.db.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT role, content
                FROM chat_messages
                WHERE user_id = $1 AND session_id = $2
                ORDER BY position
                """,
                context.user_id,
                session_id,
            )

        return [Turn(role=MessageRole(row["role"]), content=row["content"]) for row in rows]

    async def append_turns(self, context: UserContext, turns: list[Turn]) -> None:
        """Append committed turns to a session.

        Args:
            context: User context carrying the session id
            turns: Turns in commit order
        """
        if not turns:
            return

        session_id = self._require_session(context)
        async with self.db.acquire() as conn:
            async with conn.transaction():
                last_position = await conn.fetchval(
                    """
                    SELECT COALESCE(MAX(position), 0)
                    FROM chat_messages
                    WHERE user_id = $1 AND session_id = $2
                    """,
                    context.user_id,
                    session_id,
                )
                await conn.executemany(
                    """
                    INSERT INTO chat_messages (user_id, session_id, position, role, content)
                    VALUES ($1, $2, $3, $4, $5)
                    """,
                    [
                        (context.user_id, session_id, last_position + offset, turn.role.value, turn.content)
                        for offset, turn in enumerate(turns, start=1)
                    ],
                )

        logger.debug(f"Persisted {len(turns)} turns for session {session_id}")

    async def clear(self, context: UserContext) -> None:
        """Delete every persisted turn of a session."""
        session_id = self._require_session(context)
        async with self.db.acquire() as conn:
            await conn.execute(
                "DELETE FROM chat_messages WHERE user_id = $1 AND session_id = $2",
                context.user_id,
                session_id,
            )
        logger.info(f"Cleared persisted history of session {session_id}")
