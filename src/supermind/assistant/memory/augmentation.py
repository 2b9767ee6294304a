"""
Memory augmentation decorator.

Wraps a model provider so that every turn is enriched with long-term
memories of one identity, and every user message is stored back as a
new memory once the model call succeeds. The decorator is bound to a
single (user_id, session_id) pair at construction and cannot be
rebound, so memory context never crosses identities or sessions.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Optional

from ..domain.entities import ChatEvent, ChatEventType, Message, MessageRole, ToolDefinition
from ..domain.exceptions import AugmentationError
from ..domain.ports import ILLMProvider, IMemoryClient

logger = logging.getLogger(__name__)

MEMORY_CONTEXT_HEADER = "\n\nRelevant context from previous conversations:\n"


class MemoryAugmentedProvider(ILLMProvider):
    """ILLMProvider decorator backed by an IMemoryClient.

    Memories are searched when the last message of a call is a user
    message (the first model step of a turn). Continuation steps after
    tool results reuse the same memory context. The user message is
    stored after the first step completes.

    Usage:
        llm = MemoryAugmentedProvider(
            provider,
            memory_client,
            user_id=context.user_id,
            session_id=context.session_id,
        )
        async for event in llm.chat(messages, tools, system_prompt):
            ...

    Raises (from ``chat``):
        AugmentationError: If searching or storing memories fails
    """

    def __init__(
        self,
        inner: ILLMProvider,
        memory: IMemoryClient,
        user_id: str,
        session_id: str,
        search_limit: int = 5,
        add_memory: bool = True,
    ):
        if not user_id or not session_id:
            raise ValueError("Memory augmentation requires user_id and session_id")
        self._inner = inner
        self._memory = memory
        self._user_id = user_id
        self._session_id = session_id
        self.search_limit = search_limit
        self.add_memory = add_memory
        self._memory_context: list[str] = []

    @property
    def scope(self) -> tuple[str, str]:
        """The (user_id, session_id) this decorator is bound to."""
        return self._user_id, self._session_id

    @property
    def inner(self) -> ILLMProvider:
        return self._inner

    @property
    def model_name(self) -> str:
        return self._inner.model_name

    @property
    def supports_streaming(self) -> bool:
        return self._inner.supports_streaming

    @property
    def supports_tools(self) -> bool:
        return self._inner.supports_tools

    def _build_system_prompt(self, system_prompt: Optional[str]) -> Optional[str]:
        if not self._memory_context:
            return system_prompt
        context = MEMORY_CONTEXT_HEADER
        for snippet in self._memory_context:
            context += f"- {snippet}\n"
        return (system_prompt or "") + context

    async def chat(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]] = None,
        system_prompt: Optional[str] = None,
        stream: bool = True,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[ChatEvent]:
        """Augment the call with memories, then stream the inner provider."""
        last = messages[-1] if messages else None
        new_user_message = last.content if last and last.role == MessageRole.USER else None

        if new_user_message is not None:
            try:
                self._memory_context = await self._memory.search(
                    new_user_message,
                    container_tag=self._user_id,
                    limit=self.search_limit,
                )
            except Exception as e:
                logger.error(f"Memory search failed for session {self._session_id}: {e}")
                raise AugmentationError(f"Memory search failed: {e}", original_error=e) from e
            logger.debug(f"Loaded {len(self._memory_context)} memories")

        events = self._inner.chat(
            messages=messages,
            tools=tools,
            system_prompt=self._build_system_prompt(system_prompt),
            stream=stream,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        try:
            async for event in events:
                if event.type == ChatEventType.DONE:
                    if new_user_message is not None and self.add_memory:
                        await self._store(new_user_message)
                    yield event
                    return
                yield event
        finally:
            await events.aclose()

    async def _store(self, content: str) -> None:
        try:
            await self._memory.add(
                content,
                container_tag=self._user_id,
                metadata={"conversationId": self._session_id, "source": "user_chat"},
            )
        except Exception as e:
            logger.error(f"Memory add failed for session {self._session_id}: {e}")
            raise AugmentationError(f"Memory add failed: {e}", original_error=e) from e
