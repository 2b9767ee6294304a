"""
Folding of provider events into the result of one model step.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..domain.entities import ChatEvent, ChatEventType, TokenUsage, ToolCall
from ..domain.exceptions import ModelInvocationError

logger = logging.getLogger(__name__)


class StepAccumulator:
    """Collects the text, tool calls, finish reason and usage of one ``chat`` call.

    Usage:
        step = StepAccumulator()
        async for event in llm.chat(messages, tools):
            delta = step.add(event)
            if delta:
                ...  # forward text as it arrives
            if step.done:
                break
    """

    def __init__(self):
        self.text = ""
        self.tool_calls: list[ToolCall] = []
        self.finish_reason: Optional[str] = None
        self.usage = TokenUsage()
        self.done = False
        self._pending_names: dict[str, str] = {}

    def add(self, event: ChatEvent) -> Optional[str]:
        """Fold one event into the step.

        Returns:
            The text delta carried by the event, if any

        Raises:
            ModelInvocationError: On an ERROR event
        """
        if event.type == ChatEventType.TEXT_DELTA:
            delta = event.content or ""
            self.text += delta
            return delta

        if event.type == ChatEventType.TOOL_CALL_START:
            self._pending_names[event.tool_call_id] = event.tool_name or ""

        elif event.type == ChatEventType.TOOL_CALL_END:
            name = self._pending_names.pop(event.tool_call_id, None)
            if name is None:
                logger.warning(f"Tool call end without start: {event.tool_call_id}")
                return None
            self.tool_calls.append(
                ToolCall(
                    id=event.tool_call_id,
                    name=name,
                    arguments=event.tool_arguments or {},
                )
            )

        elif event.type == ChatEventType.ERROR:
            error_type = event.error_type.value if event.error_type else None
            raise ModelInvocationError(
                event.error or event.content or "Model invocation failed",
                error_type=error_type,
            )

        elif event.type == ChatEventType.DONE:
            metadata = event.metadata or {}
            self.finish_reason = metadata.get("finish_reason") or "stop"
            self.usage = TokenUsage.from_metadata(metadata)
            self.done = True

        return None

    def finish(self) -> None:
        """Validate the step once the provider stream is exhausted.

        Raises:
            ModelInvocationError: If the stream ended without DONE
        """
        if not self.done:
            raise ModelInvocationError("Model stream ended without a completion event")
