"""
OpenAI GPT LLM Provider.

Fallback model when no Anthropic credentials are configured.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

from ..domain.entities import (
    ChatEvent,
    ErrorType,
    Message,
    MessageRole,
    TokenUsage,
    ToolDefinition,
)
from .base import BaseLLMProvider, EventSequencer, LLMProviderConfig

logger = logging.getLogger(__name__)

# Lazy import to avoid requiring openai if not used
try:
    import openai
    from openai import AsyncOpenAI

    OPENAI_AVAILABLE = True
except ImportError:
    OPENAI_AVAILABLE = False
    openai = None
    AsyncOpenAI = None


@dataclass
class _PendingCall:
    id: str
    name: str = ""
    arguments: str = ""


@dataclass
class _StreamState:
    """Tool calls and usage collected from one completion stream."""

    pending: dict[int, _PendingCall] = field(default_factory=dict)
    finish_reason: Optional[str] = None
    usage: TokenUsage = field(default_factory=TokenUsage)


class OpenAIProvider(BaseLLMProvider):
    """OpenAI chat completions provider.

    Usage:
        provider = OpenAIProvider(LLMProviderConfig(api_key="sk-...", model="gpt-4o-mini"))
        async for event in provider.chat(messages, tools):
            ...
    """

    DEFAULT_MODEL = "gpt-4o-mini"

    provider_name = "OpenAI"

    def __init__(self, config: LLMProviderConfig):
        """Create the SDK client.

        Raises:
            ImportError: If the openai package is not installed
        """
        if not OPENAI_AVAILABLE:
            raise ImportError(
                "openai package is required for OpenAIProvider. "
                "Install with: pip install openai"
            )
        super().__init__(config)

        self.client = AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=config.max_retries,
        )

    def _format_messages_for_api(
        self, messages: list[Message], system_prompt: Optional[str] = None
    ) -> list[dict[str, Any]]:
        """Build the chat completions message list, system prompt first."""
        api_messages: list[dict[str, Any]] = []
        if system_prompt:
            api_messages.append({"role": "system", "content": system_prompt})

        for msg in messages:
            entry: dict[str, Any] = {"role": msg.role.value, "content": msg.content}
            if msg.role == MessageRole.TOOL:
                entry = {
                    "role": "tool",
                    "tool_call_id": msg.tool_calls[0].id if msg.tool_calls else "unknown",
                    "content": msg.content,
                }
            elif msg.role == MessageRole.ASSISTANT and msg.tool_calls:
                entry["content"] = msg.content or None
                entry["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                    }
                    for call in msg.tool_calls
                ]
            api_messages.append(entry)

        return api_messages

    def _format_tools_for_api(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        return [tool.to_openai_format() for tool in tools]

    async def _stream(
        self,
        events: EventSequencer,
        messages: list[Message],
        tools: list[ToolDefinition],
        system_prompt: Optional[str],
        temperature: float,
        max_tokens: Optional[int],
    ) -> AsyncIterator[ChatEvent]:
        request: dict[str, Any] = {
            "model": self.config.model,
            "messages": self._format_messages_for_api(messages, system_prompt),
            "temperature": temperature,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if max_tokens:
            request["max_tokens"] = max_tokens
        if tools:
            request["tools"] = self._format_tools_for_api(tools)
            request["tool_choice"] = "auto"

        state = _StreamState()
        response = await self.client.chat.completions.create(**request)

        async for chunk in response:
            # The usage chunk comes last and has no choices
            usage = getattr(chunk, "usage", None)
            if usage is not None:
                state.usage = TokenUsage(
                    input_tokens=usage.prompt_tokens or 0,
                    output_tokens=usage.completion_tokens or 0,
                )
            if not chunk.choices:
                continue

            choice = chunk.choices[0]
            delta = choice.delta
            if delta.content:
                yield events.text(delta.content)

            for fragment in delta.tool_calls or []:
                call = state.pending.get(fragment.index)
                if call is None:
                    call = _PendingCall(id=fragment.id or f"call_{fragment.index}")
                    state.pending[fragment.index] = call
                function = fragment.function
                # The name may arrive in a later fragment than the id
                if function and function.name and not call.name:
                    call.name = function.name
                    yield events.tool_start(call.id, call.name)
                if function and function.arguments:
                    call.arguments += function.arguments

            if choice.finish_reason:
                state.finish_reason = choice.finish_reason
                for call in state.pending.values():
                    if not call.name:
                        logger.warning(f"Tool call {call.id} closed without a name")
                        yield events.tool_start(call.id, "")
                    yield events.tool_end(call.id, call.arguments)
                state.pending.clear()

        yield events.done(state.finish_reason, state.usage)

    def _classify_error(self, error: Exception) -> ErrorType:
        if isinstance(error, openai.RateLimitError):
            return ErrorType.RATE_LIMIT
        if isinstance(error, openai.APITimeoutError):
            return ErrorType.TIMEOUT
        if isinstance(error, openai.APIError):
            return ErrorType.RECOVERABLE
        return ErrorType.FATAL
