"""
Anthropic Claude LLM Provider.

Talks to Claude through the Anthropic API or through AWS Bedrock, which
is how the assistant runs in production.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Iterator, Optional

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

# Lazy import to avoid requiring anthropic if not used
try:
    import anthropic
    from anthropic import AsyncAnthropic, AsyncAnthropicBedrock

    ANTHROPIC_AVAILABLE = True
except ImportError:
    ANTHROPIC_AVAILABLE = False
    anthropic = None
    AsyncAnthropic = None
    AsyncAnthropicBedrock = None


STOP_REASONS = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "tool_use": "tool_calls",
    "max_tokens": "length",
}


@dataclass
class _StreamState:
    """What one Claude stream has reported so far."""

    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: Optional[str] = None
    tool_id: Optional[str] = None
    tool_json: str = ""

    @property
    def finish_reason(self) -> Optional[str]:
        if self.stop_reason is None:
            return None
        return STOP_REASONS.get(self.stop_reason, self.stop_reason)

    @property
    def usage(self) -> TokenUsage:
        return TokenUsage(input_tokens=self.input_tokens, output_tokens=self.output_tokens)


def _is_tool_results(content: Any) -> bool:
    return isinstance(content, list) and all(block.get("type") == "tool_result" for block in content)


class AnthropicProvider(BaseLLMProvider):
    """Claude over the Anthropic API or AWS Bedrock.

    Bedrock is selected with ``extra={"bedrock_region": "us-east-1"}``;
    credentials then come from the usual AWS environment.

    Usage:
        provider = AnthropicProvider(
            LLMProviderConfig(api_key="sk-ant-...", model=AnthropicProvider.DEFAULT_MODEL)
        )
        async for event in provider.chat(messages, tools):
            ...
    """

    DEFAULT_MODEL = "claude-3-5-haiku-20241022"
    DEFAULT_BEDROCK_MODEL = "us.anthropic.claude-3-5-haiku-20241022-v1:0"

    provider_name = "Anthropic"

    def __init__(self, config: LLMProviderConfig):
        """Create the SDK client.

        Raises:
            ImportError: If the anthropic package is not installed
        """
        if not ANTHROPIC_AVAILABLE:
            raise ImportError(
                "anthropic package is required for AnthropicProvider. "
                "Install with: pip install 'anthropic[bedrock]'"
            )
        super().__init__(config)

        region = config.extra.get("bedrock_region")
        self.uses_bedrock = bool(region)
        if region:
            self.client = AsyncAnthropicBedrock(
                aws_region=region,
                timeout=config.timeout,
                max_retries=config.max_retries,
            )
            logger.debug(f"Anthropic client targets Bedrock in {region}")
        else:
            self.client = AsyncAnthropic(
                api_key=config.api_key,
                base_url=config.base_url,
                timeout=config.timeout,
                max_retries=config.max_retries,
            )

    # ============================================
    # Request formatting
    # ============================================

    def _format_messages_for_api(
        self, messages: list[Message], system_prompt: Optional[str] = None
    ) -> tuple[Optional[str], list[dict[str, Any]]]:
        """Split out the system text and build Claude's message list.

        Tool results answering one assistant message travel together in
        a single user message.

        Returns:
            Tuple of (system, messages)
        """
        system_parts = [m.content for m in messages if m.role == MessageRole.SYSTEM and m.content]
        if system_prompt:
            system_parts.append(system_prompt)

        api_messages: list[dict[str, Any]] = []
        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                continue
            role, content = self._convert(msg)
            previous = api_messages[-1] if api_messages else None
            if (
                previous is not None
                and previous["role"] == "user"
                and _is_tool_results(previous["content"])
                and _is_tool_results(content)
            ):
                previous["content"].extend(content)
            else:
                api_messages.append({"role": role, "content": content})

        return "\n\n".join(system_parts) or None, api_messages

    @staticmethod
    def _convert(msg: Message) -> tuple[str, Any]:
        if msg.role == MessageRole.TOOL:
            call_id = msg.tool_calls[0].id if msg.tool_calls else "unknown"
            return "user", [{"type": "tool_result", "tool_use_id": call_id, "content": msg.content}]

        if msg.role == MessageRole.ASSISTANT and msg.tool_calls:
            blocks: list[dict[str, Any]] = [{"type": "text", "text": msg.content}] if msg.content else []
            blocks.extend(
                {"type": "tool_use", "id": call.id, "name": call.name, "input": call.arguments}
                for call in msg.tool_calls
            )
            return "assistant", blocks

        return msg.role.value, msg.content

    def _format_tools_for_api(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        return [tool.to_anthropic_format() for tool in tools]

    # ============================================
    # Streaming
    # ============================================

    async def _stream(
        self,
        events: EventSequencer,
        messages: list[Message],
        tools: list[ToolDefinition],
        system_prompt: Optional[str],
        temperature: float,
        max_tokens: Optional[int],
    ) -> AsyncIterator[ChatEvent]:
        system, api_messages = self._format_messages_for_api(messages, system_prompt)
        request: dict[str, Any] = {
            "model": self.config.model,
            "messages": api_messages,
            "temperature": temperature,
            "max_tokens": max_tokens or self.config.max_tokens,
        }
        if system:
            request["system"] = system
        if tools:
            request["tools"] = self._format_tools_for_api(tools)

        state = _StreamState()
        async with self.client.messages.stream(**request) as response:
            async for raw_event in response:
                for event in self._translate(raw_event, state, events):
                    yield event

        yield events.done(state.finish_reason, state.usage)

    @staticmethod
    def _translate(raw: Any, state: _StreamState, events: EventSequencer) -> Iterator[ChatEvent]:
        kind = getattr(raw, "type", None)

        if kind == "message_start":
            usage = getattr(raw.message, "usage", None)
            if usage is not None:
                state.input_tokens = usage.input_tokens or 0
                state.output_tokens = usage.output_tokens or 0

        elif kind == "content_block_start":
            block = raw.content_block
            if getattr(block, "type", None) == "tool_use":
                state.tool_id = block.id
                state.tool_json = ""
                yield events.tool_start(block.id, block.name)

        elif kind == "content_block_delta":
            delta = raw.delta
            delta_type = getattr(delta, "type", None)
            if delta_type == "text_delta" and delta.text:
                yield events.text(delta.text)
            elif delta_type == "input_json_delta":
                state.tool_json += delta.partial_json

        elif kind == "content_block_stop":
            if state.tool_id:
                yield events.tool_end(state.tool_id, state.tool_json)
                state.tool_id = None

        elif kind == "message_delta":
            state.stop_reason = getattr(raw.delta, "stop_reason", None) or state.stop_reason
            usage = getattr(raw, "usage", None)
            if usage is not None and usage.output_tokens:
                state.output_tokens = usage.output_tokens

    def _classify_error(self, error: Exception) -> ErrorType:
        if isinstance(error, anthropic.RateLimitError):
            return ErrorType.RATE_LIMIT
        if isinstance(error, anthropic.APITimeoutError):
            return ErrorType.TIMEOUT
        if isinstance(error, anthropic.APIError):
            return ErrorType.RECOVERABLE
        return ErrorType.FATAL
