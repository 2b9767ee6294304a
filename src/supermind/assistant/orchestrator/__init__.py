"""Conversation Orchestrator.

The orchestrator coordinates all components of the assistant:
- Memory-augmented model for response generation
- Delegation tools dispatched to capability-scoped workers
- Conversation history with commit-or-rollback turns

Provides:
- Main orchestrator and configuration
- Response streams for streamed turns
- A bounded pool of per-session orchestrators
"""

from .agent import ConversationOrchestrator, OrchestratorConfig, initialize_orchestrator
from .conversation import ConversationHistory
from .pool import OrchestratorPool
from .prompt_builder import PromptBuilder
from .response_stream import ResponseStream, StreamState
from .tool_executor import ToolExecutor

__all__ = [
    # Main orchestrator
    "ConversationOrchestrator",
    "OrchestratorConfig",
    "initialize_orchestrator",
    # Components
    "ConversationHistory",
    "OrchestratorPool",
    "PromptBuilder",
    "ResponseStream",
    "StreamState",
    "ToolExecutor",
]
