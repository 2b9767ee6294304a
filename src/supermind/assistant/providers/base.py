"""
Base LLM Provider Implementation.

Providers translate one vendor streaming API into ChatEvents. The base
class owns the parts every vendor shares: event numbering, tool argument
parsing and turning exceptions into a terminal ERROR event.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

from ..domain.entities import (
    ChatEvent,
    ErrorType,
    Message,
    TokenUsage,
    ToolDefinition,
)
from ..domain.ports import ILLMProvider

logger = logging.getLogger(__name__)


class LLMProviderError(Exception):
    """Base exception for LLM provider errors."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.RECOVERABLE,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.error_type = error_type
        self.original_error = original_error


@dataclass
class LLMProviderConfig:
    """Configuration for LLM providers.

    Attributes:
        api_key: API key for the provider
        model: Model name to use
        base_url: Optional custom base URL
        timeout: Request timeout in seconds
        max_retries: Maximum retry attempts (handled by the SDK client)
        temperature: Default temperature
        max_tokens: Default max tokens
        extra: Provider specific options (e.g. ``bedrock_region``)
    """

    api_key: str
    model: str
    base_url: Optional[str] = None
    timeout: float = 60.0
    max_retries: int = 3
    temperature: float = 0.7
    max_tokens: int = 4096
    extra: dict[str, Any] = field(default_factory=dict)


_ERROR_PREFIXES = {
    ErrorType.RATE_LIMIT: "Rate limited",
    ErrorType.TIMEOUT: "Request timed out",
    ErrorType.RECOVERABLE: "API error",
}


def parse_tool_arguments(raw: str) -> dict[str, Any]:
    """Decode streamed tool arguments.

    Malformed JSON is kept under ``raw`` so the tool can report it
    instead of the whole step failing.
    """
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return {"raw": raw}
    return value if isinstance(value, dict) else {"value": value}


class EventSequencer:
    """Builds the numbered events of one ``chat`` call."""

    def __init__(self):
        self.last = 0

    def _next(self) -> int:
        self.last += 1
        return self.last

    def text(self, text: str) -> ChatEvent:
        return ChatEvent.text_delta(text, self._next())

    def tool_start(self, tool_call_id: str, name: str) -> ChatEvent:
        return ChatEvent.tool_call_start(tool_call_id, name, self._next())

    def tool_end(self, tool_call_id: str, raw_arguments: str) -> ChatEvent:
        return ChatEvent.tool_call_end(
            tool_call_id, parse_tool_arguments(raw_arguments), self._next()
        )

    def error(self, message: str, error_type: ErrorType) -> ChatEvent:
        return ChatEvent.error_event(message, error_type, self._next())

    def done(self, finish_reason: Optional[str], usage: TokenUsage) -> ChatEvent:
        return ChatEvent.done(
            self._next(),
            metadata={
                "finish_reason": finish_reason or "stop",
                "usage": {
                    "input_tokens": usage.input_tokens,
                    "output_tokens": usage.output_tokens,
                },
            },
        )


class BaseLLMProvider(ILLMProvider, ABC):
    """Base class for LLM provider implementations.

    Subclasses implement ``_stream`` for their API and may refine
    ``_classify_error``. ``chat`` never raises for API failures; it ends
    with an ERROR event instead.
    """

    provider_name = "LLM"

    def __init__(self, config: LLMProviderConfig):
        self.config = config
        self.client: Any = None

    @property
    def model_name(self) -> str:
        return self.config.model

    @property
    def supports_streaming(self) -> bool:
        return True

    @property
    def supports_tools(self) -> bool:
        return True

    async def chat(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]] = None,
        system_prompt: Optional[str] = None,
        stream: bool = True,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[ChatEvent]:
        """Stream one model step.

        Args:
            messages: Conversation so far, without the system turn
            tools: Tools offered for this step
            system_prompt: System prompt
            stream: Kept for interface compatibility; always streams
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate

        Yields:
            ChatEvents ending with DONE or ERROR
        """
        events = EventSequencer()
        try:
            async for event in self._stream(
                events,
                messages,
                tools or [],
                system_prompt,
                temperature,
                max_tokens,
            ):
                yield event
        except Exception as e:
            error_type = self._classify_error(e)
            if error_type is ErrorType.FATAL:
                logger.exception(f"Unexpected error in {self.provider_name} chat: {e}")
                message = str(e)
            else:
                logger.warning(f"{self.provider_name} request failed ({error_type.value}): {e}")
                message = f"{_ERROR_PREFIXES[error_type]}: {e}"
            yield events.error(message, error_type)

    @abstractmethod
    def _stream(
        self,
        events: EventSequencer,
        messages: list[Message],
        tools: list[ToolDefinition],
        system_prompt: Optional[str],
        temperature: float,
        max_tokens: Optional[int],
    ) -> AsyncIterator[ChatEvent]:
        """Call the vendor API and yield its translated events."""

    def _classify_error(self, error: Exception) -> ErrorType:
        return ErrorType.FATAL

    async def close(self) -> None:
        """Release the underlying client, if any."""
        if self.client is not None:
            await self.client.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
