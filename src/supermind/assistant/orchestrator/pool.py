"""
Orchestrator Pool.

Process-wide registry of live orchestrators, one per (user, session).
Orchestrators are created lazily on first use and their history is
rebuilt from the conversation store when one is configured. The pool
is bounded; the least recently used idle session is evicted first.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Callable, Optional

from ..domain.entities import UserContext
from ..domain.ports import IConversationStore
from .agent import ConversationOrchestrator

logger = logging.getLogger(__name__)

OrchestratorFactory = Callable[[UserContext], ConversationOrchestrator]


class OrchestratorPool:
    """LRU-bounded pool of conversation orchestrators.

    Usage:
        pool = OrchestratorPool(factory, conversation_store=store)
        orchestrator = await pool.get(user_context)
        response = await orchestrator.respond("Hello")
    """

    def __init__(
        self,
        factory: OrchestratorFactory,
        conversation_store: Optional[IConversationStore] = None,
        max_sessions: int = 256,
    ):
        """Initialize the pool.

        Args:
            factory: Builds an orchestrator for a user context
            conversation_store: Store to rebuild history from
            max_sessions: Maximum number of live orchestrators
        """
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")
        self.factory = factory
        self.conversations = conversation_store
        self.max_sessions = max_sessions
        self._orchestrators: OrderedDict[tuple[str, str], ConversationOrchestrator] = OrderedDict()
        self._lock = asyncio.Lock()

    @staticmethod
    def _key(context: UserContext) -> tuple[str, str]:
        if not context.session_id:
            raise ValueError("session_id is required")
        return context.user_id, context.session_id

    async def get(self, context: UserContext) -> ConversationOrchestrator:
        """Return the orchestrator of a session, creating it on first use."""
        key = self._key(context)
        async with self._lock:
            orchestrator = self._orchestrators.get(key)
            if orchestrator is not None:
                self._orchestrators.move_to_end(key)
                return orchestrator

            orchestrator = self.factory(context)
            await self._load_history(orchestrator, context)
            self._orchestrators[key] = orchestrator
            self._evict()
            logger.info(f"Created orchestrator for session {context.session_id}")
            return orchestrator

    def peek(self, context: UserContext) -> Optional[ConversationOrchestrator]:
        """Return the live orchestrator of a session without creating one."""
        return self._orchestrators.get(self._key(context))

    async def clear(self, context: UserContext) -> None:
        """Clear a session's history, live and persisted."""
        orchestrator = self.peek(context)
        if orchestrator is not None:
            orchestrator.clear()
        if self.conversations:
            await self.conversations.clear(context)

    async def _load_history(self, orchestrator: ConversationOrchestrator, context: UserContext) -> None:
        if not self.conversations:
            return
        try:
            turns = await self.conversations.load_turns(context)
        except Exception:
            logger.exception(f"Failed to load history of session {context.session_id}")
            return
        if turns:
            system_turn = orchestrator.snapshot()[0]
            orchestrator.restore([system_turn, *turns])
            logger.debug(f"Restored {len(turns)} turns for session {context.session_id}")

    def _evict(self) -> None:
        while len(self._orchestrators) > self.max_sessions:
            newest = next(reversed(self._orchestrators))
            victim = next(
                (
                    key
                    for key, orch in self._orchestrators.items()
                    if key != newest and not orch.busy
                ),
                None,
            )
            if victim is None:
                logger.warning("All pooled sessions are busy, pool temporarily over capacity")
                return
            del self._orchestrators[victim]
            logger.debug(f"Evicted orchestrator for session {victim[1]}")

    async def close(self) -> None:
        self._orchestrators.clear()

    def __len__(self) -> int:
        return len(self._orchestrators)

    def __contains__(self, context: UserContext) -> bool:
        return self._key(context) in self._orchestrators
