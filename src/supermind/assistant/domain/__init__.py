"""Domain entities, exceptions and port interfaces for the assistant."""

from .entities import (
    Capability,
    ChatEvent,
    ChatEventType,
    ChunkKind,
    DelegationOutcome,
    DelegationState,
    DelegationTask,
    ErrorType,
    Integration,
    Message,
    MessageRole,
    OrchestratorResponse,
    StreamChunk,
    TokenUsage,
    ToneDirective,
    ToolCall,
    ToolDefinition,
    Turn,
    UserContext,
)
from .exceptions import (
    AssistantError,
    AugmentationError,
    FailureKind,
    InvalidHistoryError,
    ModelInvocationError,
    OrchestratorError,
    UnknownCapabilityError,
)
from .ports import (
    IConversationStore,
    IIntegrationStore,
    ILLMProvider,
    IMemoryClient,
    IToolkitClient,
)

__all__ = [
    # Entities
    "Capability",
    "ChatEvent",
    "ChatEventType",
    "ChunkKind",
    "DelegationOutcome",
    "DelegationState",
    "DelegationTask",
    "ErrorType",
    "Integration",
    "Message",
    "MessageRole",
    "OrchestratorResponse",
    "StreamChunk",
    "TokenUsage",
    "ToneDirective",
    "ToolCall",
    "ToolDefinition",
    "Turn",
    "UserContext",
    # Exceptions
    "AssistantError",
    "AugmentationError",
    "FailureKind",
    "InvalidHistoryError",
    "ModelInvocationError",
    "OrchestratorError",
    "UnknownCapabilityError",
    # Ports
    "IConversationStore",
    "IIntegrationStore",
    "ILLMProvider",
    "IMemoryClient",
    "IToolkitClient",
]
