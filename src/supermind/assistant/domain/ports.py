"""
Port interfaces (abstract base classes) for the assistant.

These define the contracts that adapters must implement.
Following the Ports & Adapters (Hexagonal) architecture pattern.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, AsyncIterator, Optional

if TYPE_CHECKING:
    from .entities import (
        ChatEvent,
        Integration,
        Message,
        ToolDefinition,
        Turn,
        UserContext,
    )


# ============================================
# LLM Provider Interface
# ============================================


class ILLMProvider(ABC):
    """Interface for LLM providers (Claude, GPT, etc.).

    Implementations handle the specifics of each LLM API while
    providing a consistent interface to the orchestrator.
    """

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model identifier."""
        pass

    @property
    @abstractmethod
    def supports_streaming(self) -> bool:
        """Return True if this provider supports streaming responses."""
        pass

    @property
    @abstractmethod
    def supports_tools(self) -> bool:
        """Return True if this provider supports tool/function calling."""
        pass

    @abstractmethod
    def chat(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]] = None,
        system_prompt: Optional[str] = None,
        stream: bool = True,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[ChatEvent]:
        """Generate a response to the conversation.

        Implementations are async generators. The last event is either
        DONE (with ``finish_reason`` and ``usage`` metadata) or ERROR.

        Args:
            messages: Conversation history
            tools: Available tools for the model to use
            system_prompt: System prompt to prepend
            stream: Whether to stream the response
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate

        Yields:
            ChatEvent objects representing the streaming response
        """
        pass


# ============================================
# Memory Augmentation Interface
# ============================================


class IMemoryClient(ABC):
    """Interface for the long-term memory service.

    Every call is scoped by ``container_tag`` (the user identity), so
    memories of one identity can never be returned for another.
    """

    @abstractmethod
    async def search(
        self,
        query: str,
        container_tag: str,
        limit: int = 5,
    ) -> list[str]:
        """Return memory snippets relevant to ``query``."""
        pass

    @abstractmethod
    async def add(
        self,
        content: str,
        container_tag: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[str]:
        """Store a new memory and return its identifier."""
        pass


# ============================================
# Integration Store Interface
# ============================================


class IIntegrationStore(ABC):
    """Lookup of a user's third-party connections."""

    @abstractmethod
    async def get_integration(
        self, user_id: str, connector: str
    ) -> Optional[Integration]:
        """Return the connection record for ``connector``, if any."""
        pass


# ============================================
# Toolkit Interface
# ============================================


class IToolkitClient(ABC):
    """Interface for third-party toolkit execution (Composio, etc.)."""

    @abstractmethod
    async def list_tools(self, toolkit: str) -> list[ToolDefinition]:
        """List the tools of exactly one toolkit."""
        pass

    @abstractmethod
    async def execute(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        connection_id: str,
        user_id: str,
    ) -> Any:
        """Execute one toolkit tool against a connected account."""
        pass


# ============================================
# Conversation Store Interface
# ============================================


class IConversationStore(ABC):
    """Interface for conversation persistence."""

    @abstractmethod
    async def load_turns(self, context: UserContext) -> list[Turn]:
        """Load the persisted user/assistant turns of a session."""
        pass

    @abstractmethod
    async def append_turns(self, context: UserContext, turns: list[Turn]) -> None:
        """Persist newly committed turns of a session."""
        pass

    @abstractmethod
    async def clear(self, context: UserContext) -> None:
        """Delete the persisted turns of a session."""
        pass
