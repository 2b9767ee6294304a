"""
Domain entities for the assistant.

Plain dataclasses and enums shared by the orchestrator, the delegation
layer, the model providers and the stream transport.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional

# ============================================
# User Context
# ============================================


@dataclass(frozen=True)
class UserContext:
    """Resolved caller identity and, once bound, its chat session.

    Built by the authentication boundary from a validated bearer token.
    The core only ever sees this object, never the raw credential.
    """

    user_id: str
    session_id: Optional[str] = None

    def __post_init__(self):
        if not self.user_id:
            raise ValueError("user_id is required")

    def with_session(self, session_id: str) -> UserContext:
        """Return a copy bound to another session."""
        return replace(self, session_id=session_id)


# ============================================
# Conversation
# ============================================


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


@dataclass(frozen=True)
class Turn:
    """One role-tagged entry of the conversation history.

    Only system, user and assistant turns are ever recorded. The tool
    exchange of a single model step lives in ``Message`` objects that
    are discarded once the turn completes.
    """

    role: MessageRole
    content: str

    def to_message(self) -> Message:
        return Message(role=self.role, content=self.content)


@dataclass
class Message:
    """A provider-facing message of one model step.

    For an assistant message ``tool_calls`` lists the calls it requested;
    for a TOOL message it holds the single call being answered.
    """

    role: MessageRole
    content: str
    tool_calls: Optional[list[ToolCall]] = None


# ============================================
# Tone
# ============================================


class ToneDirective(str, Enum):
    """Response tone appended to every outgoing user message."""

    CONCISE_AND_DIRECT = "concise and direct"
    PROFESSIONAL_AND_FRIENDLY = "professional and friendly"
    DETAILED_AND_CONVERSATIONAL = "detailed and conversational"

    @property
    def suffix(self) -> str:
        """Fixed text appended to the user message for this tone."""
        return _TONE_SUFFIXES[self]

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional[ToneDirective]:
        """Match a configured tone string, ignoring case and padding.

        Returns:
            The matching directive, or None when the value is unknown
        """
        if not value:
            return None
        normalized = value.strip().lower()
        for tone in cls:
            if tone.value == normalized:
                return tone
        return None


_TONE_SUFFIXES = {
    ToneDirective.CONCISE_AND_DIRECT: "\n\nResponse Tone: Skip the fluff, speedrun the answer.",
    ToneDirective.PROFESSIONAL_AND_FRIENDLY: "\n\nResponse Tone: Helpful genius, but fun at parties.",
    ToneDirective.DETAILED_AND_CONVERSATIONAL: "\n\nNerd out and spill the tea.",
}

DEFAULT_TONE = ToneDirective.CONCISE_AND_DIRECT.value


# ============================================
# Delegation
# ============================================


class Capability(str, Enum):
    """Integration domains a task can be delegated to.

    The value is the connector name used by the integration store.
    """

    EMAIL = "gmail"
    CALENDAR = "google_calendar"


class DelegationState(str, Enum):
    """States of one delegation round-trip."""

    REQUESTED = "requested"
    CONNECTION_RESOLVED = "connection_resolved"
    CONNECTION_UNAVAILABLE = "connection_unavailable"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class DelegationTask:
    """A single natural-language instruction for one capability."""

    capability: Capability
    instruction: str


@dataclass(frozen=True)
class Integration:
    """A third-party connection record from the integration store.

    Attributes:
        user_id: Owner of the connection
        connector: Connector name (matches ``Capability`` values)
        connection_id: Upstream connected-account identifier
        status: Connection status, only ``active`` is usable
    """

    user_id: str
    connector: str
    connection_id: Optional[str]
    status: str

    @property
    def is_active(self) -> bool:
        return self.status == "active" and bool(self.connection_id)


@dataclass
class DelegationOutcome:
    """Result of one dispatch, exactly one of ``result``/``error`` is set.

    Attributes:
        capability: Capability the task was routed to
        result: Delegate's text answer (COMPLETED)
        error: User-presentable failure (CONNECTION_UNAVAILABLE or FAILED)
        states: Every state the round-trip went through, in order
    """

    capability: Capability
    result: Optional[str] = None
    error: Optional[str] = None
    states: list[DelegationState] = field(default_factory=list)

    @property
    def state(self) -> DelegationState:
        """Terminal state of the round-trip."""
        return self.states[-1] if self.states else DelegationState.REQUESTED

    @property
    def succeeded(self) -> bool:
        return self.state == DelegationState.COMPLETED

    def to_payload(self) -> dict[str, str]:
        """Tool-result payload handed back to the orchestrating model."""
        if self.error is not None:
            return {"error": self.error}
        return {"result": self.result or ""}


# ============================================
# Tools
# ============================================


@dataclass(frozen=True)
class ToolDefinition:
    """A tool offered to the model for one step.

    ``parameters`` is the JSON Schema of the tool input; each vendor wraps
    it in its own envelope.
    """

    name: str
    description: str
    parameters: dict[str, Any]

    def to_openai_format(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def to_anthropic_format(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameters,
        }


@dataclass
class ToolCall:
    """One tool invocation requested by the model.

    ``result`` is filled in by whoever executes the call; ``error`` mirrors
    the ``error`` key of an error payload so callers can branch on it.
    """

    name: str
    arguments: dict[str, Any]
    id: str = field(default_factory=lambda: f"call_{uuid.uuid4().hex[:12]}")
    result: Optional[Any] = None
    error: Optional[str] = None


# ============================================
# Responses
# ============================================


@dataclass(frozen=True)
class TokenUsage:
    """Token accounting for one turn."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )

    @classmethod
    def from_metadata(cls, metadata: Optional[dict[str, Any]]) -> TokenUsage:
        usage = (metadata or {}).get("usage") or {}
        return cls(
            input_tokens=int(usage.get("input_tokens") or 0),
            output_tokens=int(usage.get("output_tokens") or 0),
        )


@dataclass(frozen=True)
class OrchestratorResponse:
    """Buffered result of one turn."""

    text: str
    finish_reason: str
    usage: TokenUsage


# ============================================
# Streaming
# ============================================


class ChunkKind(str, Enum):
    """Kinds of stream chunks produced by the orchestrator."""

    DATA = "data"
    CONTROL = "control"
    ERROR = "error"


@dataclass(frozen=True)
class StreamChunk:
    """One ordered unit of streamed output.

    Attributes:
        sequence: 1-based, strictly increasing within one stream
        kind: data, control or error
        payload: Chunk text
    """

    sequence: int
    kind: ChunkKind
    payload: str


class ChatEventType(str, Enum):
    """Events a provider emits while streaming one model step."""

    TEXT_DELTA = "text_delta"
    TOOL_CALL_START = "tool_call_start"
    TOOL_CALL_END = "tool_call_end"
    ERROR = "error"
    DONE = "done"


class ErrorType(str, Enum):
    """How a provider failure should be treated."""

    RECOVERABLE = "recoverable"
    FATAL = "fatal"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"


@dataclass
class ChatEvent:
    """One event of a provider stream.

    A step's stream is text deltas and paired TOOL_CALL_START/END events
    (joined by ``tool_call_id``), closed by exactly one DONE, whose
    ``metadata`` carries ``finish_reason`` and ``usage``, or one ERROR.
    """

    type: ChatEventType
    sequence: int
    content: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    tool_arguments: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    error_type: Optional[ErrorType] = None
    metadata: Optional[dict[str, Any]] = None

    @classmethod
    def text_delta(cls, text: str, sequence: int) -> ChatEvent:
        return cls(ChatEventType.TEXT_DELTA, sequence, content=text)

    @classmethod
    def tool_call_start(cls, tool_call_id: str, name: str, sequence: int) -> ChatEvent:
        return cls(ChatEventType.TOOL_CALL_START, sequence, tool_call_id=tool_call_id, tool_name=name)

    @classmethod
    def tool_call_end(cls, tool_call_id: str, arguments: dict[str, Any], sequence: int) -> ChatEvent:
        return cls(ChatEventType.TOOL_CALL_END, sequence, tool_call_id=tool_call_id, tool_arguments=arguments)

    @classmethod
    def error_event(cls, message: str, error_type: ErrorType, sequence: int) -> ChatEvent:
        return cls(ChatEventType.ERROR, sequence, content=message, error=message, error_type=error_type)

    @classmethod
    def done(cls, sequence: int, metadata: Optional[dict[str, Any]] = None) -> ChatEvent:
        return cls(ChatEventType.DONE, sequence, metadata=metadata)
