"""
Tests for the model providers and step accumulation.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.supermind.assistant.domain.entities import (
    ChatEvent,
    ChatEventType,
    ErrorType,
    Message,
    MessageRole,
    TokenUsage,
    ToolCall,
    ToolDefinition,
)
from src.supermind.assistant.domain.exceptions import ModelInvocationError
from src.supermind.assistant.providers import AnthropicProvider, LLMProviderConfig, OpenAIProvider
from src.supermind.assistant.providers.accumulator import StepAccumulator
from src.supermind.assistant.providers.base import EventSequencer, parse_tool_arguments


def tool_exchange():
    call_a = ToolCall(id="toolu_1", name="delegate_to_gmail", arguments={"task": "inbox"})
    call_b = ToolCall(id="toolu_2", name="delegate_to_calendar", arguments={"task": "today"})
    return [
        Message(role=MessageRole.USER, content="Mail and agenda?"),
        Message(role=MessageRole.ASSISTANT, content="Checking.", tool_calls=[call_a, call_b]),
        Message(role=MessageRole.TOOL, content='{"result": "2 emails"}', tool_calls=[call_a]),
        Message(role=MessageRole.TOOL, content='{"result": "1 meeting"}', tool_calls=[call_b]),
    ]


class TestStepAccumulator:
    """Tests for folding provider events into one step."""

    def test_text_and_done(self):
        step = StepAccumulator()

        assert step.add(ChatEvent.text_delta("Hel", 1)) == "Hel"
        assert step.add(ChatEvent.text_delta("lo", 2)) == "lo"
        step.add(
            ChatEvent.done(3, metadata={"finish_reason": "stop", "usage": {"input_tokens": 7, "output_tokens": 2}})
        )
        step.finish()

        assert step.text == "Hello"
        assert step.done
        assert step.finish_reason == "stop"
        assert step.usage == TokenUsage(input_tokens=7, output_tokens=2)
        assert step.tool_calls == []

    def test_tool_calls_in_order(self):
        step = StepAccumulator()
        step.add(ChatEvent.tool_call_start("a", "delegate_to_gmail", 1))
        step.add(ChatEvent.tool_call_start("b", "delegate_to_calendar", 2))
        step.add(ChatEvent.tool_call_end("a", {"task": "inbox"}, 3))
        step.add(ChatEvent.tool_call_end("b", {"task": "today"}, 4))
        step.add(ChatEvent.done(5))

        assert [(tc.id, tc.name, tc.arguments) for tc in step.tool_calls] == [
            ("a", "delegate_to_gmail", {"task": "inbox"}),
            ("b", "delegate_to_calendar", {"task": "today"}),
        ]
        assert step.finish_reason == "stop"

    def test_orphan_tool_end_ignored(self):
        step = StepAccumulator()

        assert step.add(ChatEvent.tool_call_end("x", {}, 1)) is None
        assert step.tool_calls == []

    def test_error_event_raises(self):
        step = StepAccumulator()

        with pytest.raises(ModelInvocationError) as exc_info:
            step.add(ChatEvent.error_event("Rate limited", ErrorType.RATE_LIMIT, 1))

        assert exc_info.value.error_type == "rate_limit"

    def test_missing_done_raises(self):
        step = StepAccumulator()
        step.add(ChatEvent.text_delta("partial", 1))

        with pytest.raises(ModelInvocationError):
            step.finish()


@pytest.fixture
def anthropic_provider():
    return AnthropicProvider(LLMProviderConfig(api_key="test-key", model=AnthropicProvider.DEFAULT_MODEL))


@pytest.fixture
def openai_provider():
    return OpenAIProvider(LLMProviderConfig(api_key="test-key", model=OpenAIProvider.DEFAULT_MODEL))


class TestAnthropicFormatting:
    """Tests for Anthropic message formatting."""

    def test_tool_results_merged_into_one_user_message(self, anthropic_provider):
        system, messages = anthropic_provider._format_messages_for_api(tool_exchange(), "Be brief.")

        assert system == "Be brief."
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]
        assert messages[1]["content"] == [
            {"type": "text", "text": "Checking."},
            {"type": "tool_use", "id": "toolu_1", "name": "delegate_to_gmail", "input": {"task": "inbox"}},
            {"type": "tool_use", "id": "toolu_2", "name": "delegate_to_calendar", "input": {"task": "today"}},
        ]
        assert [b["tool_use_id"] for b in messages[2]["content"]] == ["toolu_1", "toolu_2"]

    def test_tools_use_input_schema(self, anthropic_provider):
        tool = ToolDefinition(name="t", description="d", parameters={"type": "object"})

        assert anthropic_provider._format_tools_for_api([tool]) == [
            {"name": "t", "description": "d", "input_schema": {"type": "object"}}
        ]

    def test_bedrock_client(self):
        provider = AnthropicProvider(
            LLMProviderConfig(
                api_key="",
                model=AnthropicProvider.DEFAULT_BEDROCK_MODEL,
                extra={"bedrock_region": "us-east-1"},
            )
        )

        assert provider.uses_bedrock


class FakeAnthropicStream:
    def __init__(self, events):
        self.events = events

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for event in self.events:
            yield event


class TestAnthropicStreaming:
    """Tests for translating Anthropic stream events."""

    @pytest.mark.asyncio
    async def test_text_tool_call_and_usage(self, anthropic_provider):
        events = [
            SimpleNamespace(type="message_start", message=SimpleNamespace(usage=SimpleNamespace(input_tokens=20, output_tokens=1))),
            SimpleNamespace(type="content_block_start", content_block=SimpleNamespace(type="text")),
            SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(type="text_delta", text="Checking.")),
            SimpleNamespace(type="content_block_stop"),
            SimpleNamespace(
                type="content_block_start",
                content_block=SimpleNamespace(type="tool_use", id="toolu_1", name="delegate_to_gmail"),
            ),
            SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(type="input_json_delta", partial_json='{"task": ')),
            SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(type="input_json_delta", partial_json='"inbox"}')),
            SimpleNamespace(type="content_block_stop"),
            SimpleNamespace(
                type="message_delta",
                delta=SimpleNamespace(stop_reason="tool_use"),
                usage=SimpleNamespace(output_tokens=15),
            ),
        ]
        anthropic_provider.client = MagicMock()
        anthropic_provider.client.messages.stream.return_value = FakeAnthropicStream(events)

        step = StepAccumulator()
        async for event in anthropic_provider.chat([Message(role=MessageRole.USER, content="Mail?")]):
            step.add(event)

        assert step.text == "Checking."
        assert [(tc.id, tc.arguments) for tc in step.tool_calls] == [("toolu_1", {"task": "inbox"})]
        assert step.finish_reason == "tool_calls"
        assert step.usage == TokenUsage(input_tokens=20, output_tokens=15)

    @pytest.mark.asyncio
    async def test_unexpected_failure_becomes_error_event(self, anthropic_provider):
        anthropic_provider.client = MagicMock()
        anthropic_provider.client.messages.stream.side_effect = RuntimeError("socket closed")

        events = [e async for e in anthropic_provider.chat([Message(role=MessageRole.USER, content="Hi")])]

        assert [e.type for e in events] == [ChatEventType.ERROR]
        assert events[0].error_type == ErrorType.FATAL


class TestOpenAIFormatting:
    """Tests for OpenAI message formatting."""

    def test_system_prompt_and_tool_messages(self, openai_provider):
        messages = openai_provider._format_messages_for_api(tool_exchange(), "Be brief.")

        assert messages[0] == {"role": "system", "content": "Be brief."}
        assert messages[2]["tool_calls"][0] == {
            "id": "toolu_1",
            "type": "function",
            "function": {"name": "delegate_to_gmail", "arguments": '{"task": "inbox"}'},
        }
        assert messages[3] == {"role": "tool", "tool_call_id": "toolu_1", "content": '{"result": "2 emails"}'}
        assert messages[4]["tool_call_id"] == "toolu_2"

    def test_tools_use_function_format(self, openai_provider):
        tool = ToolDefinition(name="t", description="d", parameters={"type": "object"})

        assert openai_provider._format_tools_for_api([tool])[0]["function"]["name"] == "t"


class TestToolArguments:
    """Tests for decoding streamed tool arguments."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("", {}),
            ('{"task": "inbox"}', {"task": "inbox"}),
            ('{"task": ', {"raw": '{"task": '}),
            ("[1, 2]", {"value": [1, 2]}),
        ],
    )
    def test_parse(self, raw, expected):
        assert parse_tool_arguments(raw) == expected

    def test_sequence_is_per_call(self):
        first, second = EventSequencer(), EventSequencer()

        assert [first.text("a").sequence, first.text("b").sequence] == [1, 2]
        assert second.text("c").sequence == 1


def openai_chunk(content=None, tool_calls=None, finish_reason=None, usage=None):
    choices = []
    if content is not None or tool_calls is not None or finish_reason is not None:
        delta = SimpleNamespace(content=content, tool_calls=tool_calls)
        choices.append(SimpleNamespace(delta=delta, finish_reason=finish_reason))
    return SimpleNamespace(choices=choices, usage=usage)


def openai_tool_fragment(index, arguments, call_id=None, name=None):
    return SimpleNamespace(
        index=index,
        id=call_id,
        function=SimpleNamespace(name=name, arguments=arguments),
    )


async def async_items(items):
    for item in items:
        yield item


class TestOpenAIStreaming:
    """Tests for translating chat completion chunks."""

    @pytest.mark.asyncio
    async def test_text_tool_call_and_usage(self, openai_provider):
        chunks = [
            openai_chunk(content="Checking."),
            openai_chunk(tool_calls=[openai_tool_fragment(0, '{"task"', call_id="call_a", name="delegate_to_gmail")]),
            openai_chunk(tool_calls=[openai_tool_fragment(0, ': "inbox"}')]),
            openai_chunk(finish_reason="tool_calls"),
            openai_chunk(usage=SimpleNamespace(prompt_tokens=12, completion_tokens=4)),
        ]
        openai_provider.client = MagicMock()
        openai_provider.client.chat.completions.create = AsyncMock(return_value=async_items(chunks))

        step = StepAccumulator()
        async for event in openai_provider.chat(
            [Message(role=MessageRole.USER, content="Mail?")],
            tools=[ToolDefinition(name="delegate_to_gmail", description="d", parameters={"type": "object"})],
        ):
            step.add(event)

        assert step.text == "Checking."
        assert [(tc.id, tc.name, tc.arguments) for tc in step.tool_calls] == [
            ("call_a", "delegate_to_gmail", {"task": "inbox"})
        ]
        assert step.finish_reason == "tool_calls"
        assert step.usage == TokenUsage(input_tokens=12, output_tokens=4)

        request = openai_provider.client.chat.completions.create.await_args.kwargs
        assert request["tool_choice"] == "auto"
        assert "max_tokens" not in request

    @pytest.mark.asyncio
    async def test_tool_name_in_later_fragment(self, openai_provider):
        chunks = [
            openai_chunk(tool_calls=[openai_tool_fragment(0, "", call_id="call_b")]),
            openai_chunk(tool_calls=[openai_tool_fragment(0, '{"task": "today"}', name="delegate_to_calendar")]),
            openai_chunk(finish_reason="tool_calls"),
        ]
        openai_provider.client = MagicMock()
        openai_provider.client.chat.completions.create = AsyncMock(return_value=async_items(chunks))

        events = [e async for e in openai_provider.chat([Message(role=MessageRole.USER, content="Agenda?")])]
        step = StepAccumulator()
        for event in events:
            step.add(event)

        starts = [e for e in events if e.type == ChatEventType.TOOL_CALL_START]
        assert [(e.tool_call_id, e.tool_name) for e in starts] == [("call_b", "delegate_to_calendar")]
        assert [(tc.id, tc.name, tc.arguments) for tc in step.tool_calls] == [
            ("call_b", "delegate_to_calendar", {"task": "today"})
        ]

    @pytest.mark.asyncio
    async def test_failure_becomes_error_event(self, openai_provider):
        openai_provider.client = MagicMock()
        openai_provider.client.chat.completions.create = AsyncMock(side_effect=RuntimeError("boom"))

        events = [e async for e in openai_provider.chat([Message(role=MessageRole.USER, content="Hi")])]

        assert len(events) == 1
        assert events[0].error == "boom"
        assert events[0].error_type == ErrorType.FATAL
