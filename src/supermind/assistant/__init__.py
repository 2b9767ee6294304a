"""
Personal Assistant Module.

A conversational assistant with long-term memory that delegates email
and calendar work to capability-scoped workers.

Architecture:
- Domain: Core entities, exceptions and port interfaces
- Providers: LLM provider implementations (Claude direct/Bedrock, GPT)
- Memory: Supermemory augmentation and PostgreSQL conversation store
- Delegation: Tool registry, dispatcher and delegate workers (Composio)
- Orchestrator: Per-session turn loop with commit-or-rollback history
- Streaming: Server-Sent Events codec and stream client
- API: FastAPI router with JWT authentication
"""

# Domain entities
from .domain import (
    Capability,
    FailureKind,
    InvalidHistoryError,
    MessageRole,
    OrchestratorError,
    OrchestratorResponse,
    StreamChunk,
    TokenUsage,
    ToneDirective,
    Turn,
    UserContext,
)

# Orchestrator
from .orchestrator import (
    ConversationOrchestrator,
    OrchestratorConfig,
    OrchestratorPool,
    ResponseStream,
    initialize_orchestrator,
)

# Memory
from .memory import MemoryAugmentedProvider, SupermemoryClient, SupermemoryConfig

# Delegation
from .delegation import DelegationDispatcher, DelegationToolRegistry

# Providers
from .providers import AnthropicProvider, LLMProviderConfig, OpenAIProvider

# Streaming
from .streaming import ChatStreamClient, SSEDecoder, encode_stream

__all__ = [
    # Domain
    "Capability",
    "FailureKind",
    "InvalidHistoryError",
    "MessageRole",
    "OrchestratorError",
    "OrchestratorResponse",
    "StreamChunk",
    "TokenUsage",
    "ToneDirective",
    "Turn",
    "UserContext",
    # Orchestrator
    "ConversationOrchestrator",
    "OrchestratorConfig",
    "OrchestratorPool",
    "ResponseStream",
    "initialize_orchestrator",
    # Memory
    "MemoryAugmentedProvider",
    "SupermemoryClient",
    "SupermemoryConfig",
    # Delegation
    "DelegationDispatcher",
    "DelegationToolRegistry",
    # Providers
    "AnthropicProvider",
    "LLMProviderConfig",
    "OpenAIProvider",
    # Streaming
    "ChatStreamClient",
    "SSEDecoder",
    "encode_stream",
]
