"""
Delegate worker.

A narrow agent bound to exactly one capability and one upstream
connection. It runs a single natural-language task with that
capability's toolkit tools and returns plain text.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from ..domain.entities import Capability, Message, MessageRole, ToolCall, ToolDefinition
from ..domain.ports import ILLMProvider, IToolkitClient
from ..prompts import get_worker_system_prompt
from ..providers.accumulator import StepAccumulator
from .registry import get_capability_spec
from .toolkits import ToolkitError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DelegateWorkerContext:
    """Everything one delegation call is allowed to use.

    Built fresh by the dispatcher for every call and never reused.

    Attributes:
        capability: The single capability this worker serves
        llm: Model handle for the worker's own calls
        connection_id: Resolved upstream connection
        user_id: Identity the connection belongs to
        tools: Tools of this capability's toolkit, and nothing else
    """

    capability: Capability
    llm: ILLMProvider
    connection_id: str
    user_id: str
    tools: tuple[ToolDefinition, ...]

    @property
    def toolset(self) -> frozenset[str]:
        """Names of the tools bound to this worker."""
        return frozenset(tool.name for tool in self.tools)


class DelegateWorker:
    """Runs one task against one capability's toolset.

    Usage:
        worker = DelegateWorker(context, toolkit_client)
        text = await worker.run("Find unread emails from today")
    """

    def __init__(
        self,
        context: DelegateWorkerContext,
        toolkit: IToolkitClient,
        max_steps: int = 5,
        temperature: float = 0.3,
    ):
        self.context = context
        self.toolkit = toolkit
        self.max_steps = max_steps
        self.temperature = temperature
        self.spec = get_capability_spec(context.capability)

    @property
    def toolset(self) -> frozenset[str]:
        return self.context.toolset

    async def run(self, task: str) -> str:
        """Execute the task and return the delegate's final text.

        Raises:
            ModelInvocationError: If the worker's model call fails
        """
        messages = [
            Message(role=MessageRole.USER, content=self.spec.delegate_prompt(task)),
        ]
        system_prompt = get_worker_system_prompt(self.spec.worker_type)
        tools = list(self.context.tools)
        text = ""

        for step_number in range(1, self.max_steps + 1):
            step = StepAccumulator()
            events = self.context.llm.chat(
                messages=messages,
                tools=tools or None,
                system_prompt=system_prompt,
                temperature=self.temperature,
            )
            try:
                async for event in events:
                    step.add(event)
                    if step.done:
                        break
            finally:
                await events.aclose()
            step.finish()

            text = step.text
            if not step.tool_calls:
                return text

            logger.debug(
                f"{self.spec.label} worker step {step_number}: "
                f"{len(step.tool_calls)} tool call(s)"
            )
            messages.append(
                Message(
                    role=MessageRole.ASSISTANT,
                    content=step.text,
                    tool_calls=step.tool_calls,
                )
            )
            for tool_call in step.tool_calls:
                await self._execute_tool_call(tool_call)
                messages.append(
                    Message(
                        role=MessageRole.TOOL,
                        content=json.dumps(tool_call.result, default=str),
                        tool_calls=[tool_call],
                    )
                )

        logger.warning(f"{self.spec.label} worker hit the step limit ({self.max_steps})")
        return text

    async def _execute_tool_call(self, tool_call: ToolCall) -> ToolCall:
        """Execute one toolkit call, refusing tools outside the toolset."""
        if tool_call.name not in self.toolset:
            logger.warning(
                f"{self.spec.label} worker requested foreign tool {tool_call.name}"
            )
            tool_call.error = f"Tool {tool_call.name} is not available to this assistant"
            tool_call.result = {"error": tool_call.error, "recoverable": False}
            return tool_call

        try:
            data: Any = await self.toolkit.execute(
                tool_call.name,
                tool_call.arguments,
                connection_id=self.context.connection_id,
                user_id=self.context.user_id,
            )
            tool_call.result = {"result": data}
        except ToolkitError as e:
            logger.warning(f"Toolkit call {tool_call.name} failed: {e}")
            tool_call.error = str(e)
            tool_call.result = {"error": str(e), "recoverable": e.recoverable}

        return tool_call
