"""
Delegation tool registry.

Maps the closed ``Capability`` enumeration to the model-facing delegation
tools. Each tool is a typed record of description, input schema and an
``invoke`` coroutine that never raises; it returns ``{"result": ...}`` or
``{"error": ...}``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

from ..domain.entities import Capability, ToolCall, ToolDefinition
from ..domain.exceptions import UnknownCapabilityError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapabilitySpec:
    """Static description of one delegation capability.

    Attributes:
        capability: Capability this spec describes
        tool_name: Name of the tool exposed to the orchestrating model
        description: Tool description shown to the model
        task_description: Description of the ``task`` argument
        toolkit: Toolkit slug whose tools the delegate may use
        label: Human-readable service name
        worker_type: Worker kind used in the worker system prompt
    """

    capability: Capability
    tool_name: str
    description: str
    task_description: str
    toolkit: str
    label: str
    worker_type: str

    @property
    def unavailable_message(self) -> str:
        short = self.label.split()[-1]
        return (
            f"{self.label} not connected. "
            f"Please connect {short} first in your profile settings."
        )

    @property
    def failure_prefix(self) -> str:
        return f"{self.label.split()[-1]} task failed"

    def delegate_prompt(self, task: str) -> str:
        """User prompt handed to the delegate worker."""
        return f"You are a {self.label} assistant. {task}"

    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "task": {
                    "type": "string",
                    "description": self.task_description,
                },
            },
            "required": ["task"],
        }


CAPABILITY_SPECS: dict[Capability, CapabilitySpec] = {
    Capability.EMAIL: CapabilitySpec(
        capability=Capability.EMAIL,
        tool_name="delegate_to_gmail",
        description=(
            "Delegate Gmail-related tasks like searching emails, sending emails, "
            "reading emails, managing drafts"
        ),
        task_description="The specific Gmail task to perform",
        toolkit="gmail",
        label="Gmail",
        worker_type="email",
    ),
    Capability.CALENDAR: CapabilitySpec(
        capability=Capability.CALENDAR,
        tool_name="delegate_to_calendar",
        description=(
            "Delegate Google Calendar tasks like checking schedule, creating events, "
            "finding meetings, updating events"
        ),
        task_description="The specific Calendar task to perform",
        toolkit="googlecalendar",
        label="Google Calendar",
        worker_type="calendar",
    ),
}

# Accepted spellings besides the enum value ("gmail") and name ("EMAIL")
_ALIASES = {
    "email": Capability.EMAIL,
    "calendar": Capability.CALENDAR,
    "googlecalendar": Capability.CALENDAR,
}


def parse_capability(value: Union[Capability, str]) -> Capability:
    """Resolve a capability name.

    Raises:
        UnknownCapabilityError: If the name is not a known capability
    """
    if isinstance(value, Capability):
        return value
    normalized = str(value).strip().lower()
    for capability in Capability:
        if normalized in (capability.value, capability.name.lower()):
            return capability
    if normalized in _ALIASES:
        return _ALIASES[normalized]
    raise UnknownCapabilityError(str(value))


def get_capability_spec(capability: Union[Capability, str]) -> CapabilitySpec:
    """Return the static spec of a capability."""
    return CAPABILITY_SPECS[parse_capability(capability)]


Invoker = Callable[[Capability, str], Awaitable[dict[str, str]]]


@dataclass(frozen=True)
class DelegationTool:
    """A model-facing delegation tool.

    Attributes:
        capability: Capability the tool delegates to
        name: Tool name
        description: Tool description
        input_schema: JSON Schema of the tool input
        invoke: Coroutine taking the tool arguments
    """

    capability: Capability
    name: str
    description: str
    input_schema: dict[str, Any]
    invoke: Callable[[dict[str, Any]], Awaitable[dict[str, str]]]

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.input_schema,
        )


class DelegationToolRegistry:
    """Registry of the delegation tools available to one orchestrator.

    Usage:
        registry = DelegationToolRegistry(dispatcher.dispatch_payload)
        registry.register("gmail")

        tools = registry.definitions()
        payload = await registry.execute_tool_call(tool_call)
    """

    def __init__(self, invoker: Invoker, capabilities: Iterable[Union[Capability, str]] = ()):
        """Initialize the registry.

        Args:
            invoker: Coroutine dispatching a task for a capability
            capabilities: Capabilities to register immediately

        Raises:
            UnknownCapabilityError: If a capability name is unknown
        """
        self._invoker = invoker
        self._tools: dict[str, DelegationTool] = {}
        for capability in capabilities:
            self.register(capability)

    def register(self, capability: Union[Capability, str]) -> DelegationTool:
        """Register the delegation tool of a capability."""
        spec = get_capability_spec(capability)

        async def invoke(arguments: dict[str, Any]) -> dict[str, str]:
            task = arguments.get("task") if isinstance(arguments, dict) else None
            if not isinstance(task, str) or not task.strip():
                return {"error": f"{spec.tool_name} requires a non-empty 'task' string"}
            return await self._invoker(spec.capability, task)

        tool = DelegationTool(
            capability=spec.capability,
            name=spec.tool_name,
            description=spec.description,
            input_schema=spec.input_schema(),
            invoke=invoke,
        )
        self._tools[tool.name] = tool
        logger.debug(f"Registered delegation tool {tool.name}")
        return tool

    @property
    def capabilities(self) -> list[Capability]:
        return [tool.capability for tool in self._tools.values()]

    def get(self, name: str) -> Optional[DelegationTool]:
        return self._tools.get(name)

    def definitions(self) -> list[ToolDefinition]:
        """Tool definitions in registration order."""
        return [tool.definition() for tool in self._tools.values()]

    async def execute_tool_call(self, tool_call: ToolCall) -> dict[str, str]:
        """Run a model tool call and return its payload."""
        tool = self._tools.get(tool_call.name)
        if tool is None:
            return {"error": f"Unknown tool: {tool_call.name}"}
        return await tool.invoke(tool_call.arguments)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
