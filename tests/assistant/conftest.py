"""
Shared fakes for assistant tests.

ScriptedProvider replays one scripted step per ``chat`` call and
records what it was called with. FakeMemory and FakeToolkit record
every call and can be told to fail.
"""

import asyncio
from typing import Any, Optional

import pytest

from src.supermind.assistant.domain.entities import (
    ChatEvent,
    ErrorType,
    Message,
    ToolDefinition,
)
from src.supermind.assistant.domain.ports import (
    ILLMProvider,
    IMemoryClient,
    IToolkitClient,
)


def text_step(*deltas: str, finish_reason: str = "stop", usage: tuple[int, int] = (10, 5)) -> list:
    """A model step that answers with text."""
    events: list[Any] = [ChatEvent.text_delta(d, i) for i, d in enumerate(deltas, start=1)]
    events.append(
        ChatEvent.done(
            len(events) + 1,
            metadata={
                "finish_reason": finish_reason,
                "usage": {"input_tokens": usage[0], "output_tokens": usage[1]},
            },
        )
    )
    return events


def tool_step(*calls: tuple[str, str, dict], text: str = "", usage: tuple[int, int] = (10, 5)) -> list:
    """A model step that requests tool calls: (call_id, tool_name, arguments)."""
    events: list[Any] = []
    if text:
        events.append(ChatEvent.text_delta(text, 0))
    for call_id, name, arguments in calls:
        events.append(ChatEvent.tool_call_start(call_id, name, 0))
        events.append(ChatEvent.tool_call_end(call_id, arguments, 0))
    events.append(
        ChatEvent.done(
            0,
            metadata={
                "finish_reason": "tool_calls",
                "usage": {"input_tokens": usage[0], "output_tokens": usage[1]},
            },
        )
    )
    return events


def error_step(message: str = "model exploded") -> list:
    return [ChatEvent.error_event(message, ErrorType.FATAL, 1)]


class ScriptedProvider(ILLMProvider):
    """Fake model replaying scripted steps.

    Items of a step are ChatEvents, exceptions (raised when reached) or
    asyncio.Events (awaited before continuing).
    """

    def __init__(self, *steps: list):
        self.steps = list(steps)
        self.calls: list[dict[str, Any]] = []
        self.closed = 0

    @property
    def model_name(self) -> str:
        return "scripted"

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
    ):
        self.calls.append(
            {
                "messages": list(messages),
                "tools": list(tools or []),
                "system_prompt": system_prompt,
            }
        )
        if not self.steps:
            raise AssertionError("ScriptedProvider ran out of steps")
        step = self.steps.pop(0)
        try:
            for item in step:
                if isinstance(item, BaseException):
                    raise item
                if isinstance(item, asyncio.Event):
                    await item.wait()
                    continue
                yield item
        finally:
            self.closed += 1


class FakeMemory(IMemoryClient):
    def __init__(self, snippets: Optional[list[str]] = None):
        self.snippets = list(snippets or [])
        self.searches: list[tuple[str, str]] = []
        self.added: list[dict[str, Any]] = []
        self.fail_search: Optional[Exception] = None
        self.fail_add: Optional[Exception] = None

    async def search(self, query: str, container_tag: str, limit: int = 5) -> list[str]:
        self.searches.append((query, container_tag))
        if self.fail_search:
            raise self.fail_search
        return self.snippets[:limit]

    async def add(self, content: str, container_tag: str, metadata: Optional[dict] = None) -> Optional[str]:
        if self.fail_add:
            raise self.fail_add
        self.added.append({"content": content, "container_tag": container_tag, "metadata": metadata})
        return f"mem_{len(self.added)}"


class FakeToolkit(IToolkitClient):
    def __init__(self, tools_by_toolkit: Optional[dict[str, list[str]]] = None):
        self.tools_by_toolkit = tools_by_toolkit or {
            "gmail": ["GMAIL_FETCH_EMAILS", "GMAIL_SEND_EMAIL"],
            "googlecalendar": ["GOOGLECALENDAR_EVENTS_LIST"],
        }
        self.listed: list[str] = []
        self.executed: list[dict[str, Any]] = []
        self.results: dict[str, Any] = {}

    async def list_tools(self, toolkit: str) -> list[ToolDefinition]:
        self.listed.append(toolkit)
        return [
            ToolDefinition(name=name, description=f"{name} tool", parameters={"type": "object", "properties": {}})
            for name in self.tools_by_toolkit.get(toolkit, [])
        ]

    async def execute(self, tool_name: str, arguments: dict, connection_id: str, user_id: str) -> Any:
        self.executed.append(
            {
                "tool_name": tool_name,
                "arguments": arguments,
                "connection_id": connection_id,
                "user_id": user_id,
            }
        )
        return self.results.get(tool_name, {"ok": True})


@pytest.fixture
def memory():
    return FakeMemory()


@pytest.fixture
def toolkit():
    return FakeToolkit()
