"""
Tests for the PostgreSQL-backed stores.

Uses mocked asyncpg pools to test without a real database.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.supermind.assistant.delegation import InMemoryIntegrationStore, PostgresIntegrationStore
from src.supermind.assistant.domain.entities import Integration, MessageRole, Turn, UserContext
from src.supermind.assistant.memory import ConversationStore


# ============================================
# Helpers
# ============================================


class AsyncContextManager:
    """Helper class to create async context managers for mocking."""

    def __init__(self, return_value):
        self.return_value = return_value

    async def __aenter__(self):
        return self.return_value

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


@pytest.fixture
def mock_db_pool():
    """Create a mock database pool."""
    pool = MagicMock()

    mock_conn = AsyncMock()
    mock_conn.execute = AsyncMock()
    mock_conn.executemany = AsyncMock()
    mock_conn.fetch = AsyncMock(return_value=[])
    mock_conn.fetchrow = AsyncMock(return_value=None)
    mock_conn.fetchval = AsyncMock(return_value=0)
    mock_conn.transaction = MagicMock(return_value=AsyncContextManager(None))

    pool.acquire = MagicMock(return_value=AsyncContextManager(mock_conn))
    pool._mock_conn = mock_conn

    return pool


CONTEXT = UserContext(user_id="user-1", session_id="session-1")


class TestConversationStore:
    """Tests for ConversationStore."""

    @pytest.mark.asyncio
    async def test_ensure_schema(self, mock_db_pool):
        store = ConversationStore(mock_db_pool)

        await store.ensure_schema()

        sql = mock_db_pool._mock_conn.execute.await_args.args[0]
        assert "CREATE TABLE IF NOT EXISTS chat_messages" in sql

    @pytest.mark.asyncio
    async def test_load_turns_filters_by_user_and_session(self, mock_db_pool):
        mock_db_pool._mock_conn.fetch.return_value = [
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello"},
        ]
        store = ConversationStore(mock_db_pool)

        turns = await store.load_turns(CONTEXT)

        assert turns == [Turn(MessageRole.USER, "Hi"), Turn(MessageRole.ASSISTANT, "Hello")]
        args = mock_db_pool._mock_conn.fetch.await_args.args
        assert "WHERE user_id = $1 AND session_id = $2" in args[0]
        assert args[1:] == ("user-1", "session-1")

    @pytest.mark.asyncio
    async def test_append_turns_continues_positions(self, mock_db_pool):
        mock_db_pool._mock_conn.fetchval.return_value = 4
        store = ConversationStore(mock_db_pool)

        await store.append_turns(
            CONTEXT, [Turn(MessageRole.USER, "Hi"), Turn(MessageRole.ASSISTANT, "Hello")]
        )

        rows = mock_db_pool._mock_conn.executemany.await_args.args[1]
        assert rows == [
            ("user-1", "session-1", 5, "user", "Hi"),
            ("user-1", "session-1", 6, "assistant", "Hello"),
        ]
        mock_db_pool._mock_conn.transaction.assert_called_once()

    @pytest.mark.asyncio
    async def test_append_nothing_skips_database(self, mock_db_pool):
        store = ConversationStore(mock_db_pool)

        await store.append_turns(CONTEXT, [])

        mock_db_pool.acquire.assert_not_called()

    @pytest.mark.asyncio
    async def test_clear(self, mock_db_pool):
        store = ConversationStore(mock_db_pool)

        await store.clear(CONTEXT)

        args = mock_db_pool._mock_conn.execute.await_args.args
        assert args[0].startswith("DELETE FROM chat_messages")
        assert args[1:] == ("user-1", "session-1")

    @pytest.mark.asyncio
    async def test_session_required(self, mock_db_pool):
        store = ConversationStore(mock_db_pool)

        with pytest.raises(ValueError):
            await store.load_turns(UserContext(user_id="user-1"))


class TestIntegrationStores:
    """Tests for integration lookups."""

    @pytest.mark.asyncio
    async def test_postgres_row_mapped(self, mock_db_pool):
        mock_db_pool._mock_conn.fetchrow.return_value = {
            "connection_id": "ca_123",
            "connection_status": "active",
        }
        store = PostgresIntegrationStore(mock_db_pool)

        integration = await store.get_integration("user-1", "gmail")

        assert integration == Integration("user-1", "gmail", "ca_123", "active")
        assert integration.is_active
        assert mock_db_pool._mock_conn.fetchrow.await_args.args[1:] == ("user-1", "gmail")

    @pytest.mark.asyncio
    async def test_postgres_missing_row(self, mock_db_pool):
        store = PostgresIntegrationStore(mock_db_pool)

        assert await store.get_integration("user-1", "gmail") is None

    @pytest.mark.asyncio
    async def test_in_memory_put_and_remove(self):
        store = InMemoryIntegrationStore()
        store.put(Integration("user-1", "gmail", "ca_1", "pending"))

        integration = await store.get_integration("user-1", "gmail")
        assert integration is not None
        assert not integration.is_active

        store.remove("user-1", "gmail")
        assert await store.get_integration("user-1", "gmail") is None
