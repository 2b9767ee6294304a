"""
Pydantic schemas for the assistant API.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from ..domain.entities import OrchestratorResponse, Turn


# =============================================================================
# Constants
# =============================================================================

MAX_MESSAGE_LENGTH = 10000
MAX_MESSAGES = 50


# =============================================================================
# Chat Schemas
# =============================================================================


class ChatMessageIn(BaseModel):
    """One message of a streamed chat request."""

    role: Literal["user", "assistant", "system"]
    content: str = Field(..., max_length=MAX_MESSAGE_LENGTH)


class ChatStreamRequest(BaseModel):
    """Request body of the SSE chat endpoint."""

    session_id: str = Field(..., alias="sessionId", min_length=1, max_length=128)
    messages: list[ChatMessageIn] = Field(..., min_length=1, max_length=MAX_MESSAGES)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "sessionId": "session-1",
                "messages": [{"role": "user", "content": "What's on my calendar today?"}],
            }
        }

    def combined_message(self) -> str:
        """Join the user messages into a single instruction."""
        return "\n\n".join(m.content for m in self.messages if m.role == "user")


class RespondRequest(BaseModel):
    """Request body of the buffered chat endpoint."""

    session_id: str = Field(..., alias="sessionId", min_length=1, max_length=128)
    message: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)
    additional_context: Optional[str] = Field(
        None, alias="additionalContext", max_length=MAX_MESSAGE_LENGTH
    )

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "sessionId": "session-1",
                "message": "My name is Ada",
            }
        }


class UsageResponse(BaseModel):
    """Token usage of one turn."""

    input_tokens: int = Field(..., alias="inputTokens")
    output_tokens: int = Field(..., alias="outputTokens")
    total_tokens: int = Field(..., alias="totalTokens")

    class Config:
        populate_by_name = True


class RespondResponse(BaseModel):
    """Buffered result of one turn."""

    text: str
    finish_reason: str = Field(..., alias="finishReason")
    usage: UsageResponse

    class Config:
        populate_by_name = True

    @classmethod
    def from_domain(cls, response: OrchestratorResponse) -> RespondResponse:
        return cls(
            text=response.text,
            finish_reason=response.finish_reason,
            usage=UsageResponse(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                total_tokens=response.usage.total_tokens,
            ),
        )


# =============================================================================
# History Schemas
# =============================================================================


class TurnResponse(BaseModel):
    """One committed turn."""

    role: str
    content: str

    @classmethod
    def from_domain(cls, turn: Turn) -> TurnResponse:
        return cls(role=turn.role.value, content=turn.content)


class HistoryResponse(BaseModel):
    """Committed user and assistant turns of a session."""

    session_id: str = Field(..., alias="sessionId")
    turns: list[TurnResponse]

    class Config:
        populate_by_name = True


class HealthResponse(BaseModel):
    status: str
    model: Optional[str] = None
    sessions: int = 0
