"""
Conversation Orchestrator.

Main orchestration logic of the assistant. Coordinates:
- The memory-augmented model with delegation tools
- Tool dispatch to capability-scoped delegate workers
- Conversation history with commit-or-rollback turns
- Buffered and streamed responses
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field, replace
from typing import AsyncIterator, Iterable, Optional, Union

from ..delegation.dispatcher import DelegationDispatcher
from ..delegation.registry import DelegationToolRegistry
from ..domain.entities import (
    DEFAULT_TONE,
    Capability,
    Message,
    MessageRole,
    OrchestratorResponse,
    TokenUsage,
    Turn,
    UserContext,
)
from ..domain.exceptions import AugmentationError, FailureKind, OrchestratorError
from ..domain.ports import (
    IConversationStore,
    IIntegrationStore,
    ILLMProvider,
    IMemoryClient,
    IToolkitClient,
)
from ..memory.augmentation import MemoryAugmentedProvider
from ..prompts import ORCHESTRATOR_SYSTEM_PROMPT
from ..providers.accumulator import StepAccumulator
from .conversation import ConversationHistory
from .prompt_builder import PromptBuilder
from .response_stream import ResponseStream
from .tool_executor import ToolExecutor

logger = logging.getLogger(__name__)


@dataclass
class OrchestratorConfig:
    """Configuration for the conversation orchestrator.

    Attributes:
        system_prompt: Operating instructions stored as the system turn
        tone: Response tone appended to every user turn
        max_steps: Maximum model steps per turn (tool round-trips + 1)
        temperature: LLM temperature
        max_tokens: Maximum tokens per model step
    """

    system_prompt: str = ORCHESTRATOR_SYSTEM_PROMPT
    tone: Optional[str] = DEFAULT_TONE
    max_steps: int = 5
    temperature: float = 0.7
    max_tokens: Optional[int] = None


@dataclass
class _TurnResult:
    text: str = ""
    finish_reason: str = "stop"
    usage: TokenUsage = field(default_factory=TokenUsage)
    steps: int = 0


class ConversationOrchestrator:
    """Per-session conversation orchestrator.

    Manages the turn loop:
    1. Apply context prefix and tone to the user message
    2. Append the user turn
    3. Call the (memory-augmented) model with the delegation tools
    4. Dispatch tool calls and loop back with their results
    5. Append the assistant turn, or roll the user turn back on failure

    Turns are serialized: a second ``respond`` or ``respond_stream``
    waits until the running turn is done.

    Usage:
        orchestrator = ConversationOrchestrator.initialize(
            identity="user-1",
            session_id="session-1",
            llm=provider,
            memory=supermemory_client,
            toolkit=composio_client,
            capabilities=["gmail", "google_calendar"],
        )

        response = await orchestrator.respond("My name is Ada")
        print(response.text, response.usage.total_tokens)

        async with await orchestrator.respond_stream("What is my name?") as stream:
            async for chunk in stream:
                print(chunk.payload, end="")
    """

    def __init__(
        self,
        llm: ILLMProvider,
        context: UserContext,
        tool_registry: Optional[DelegationToolRegistry] = None,
        conversation_store: Optional[IConversationStore] = None,
        config: Optional[OrchestratorConfig] = None,
    ):
        """Initialize the orchestrator.

        Args:
            llm: Model handle, normally wrapped by MemoryAugmentedProvider
            context: Identity and session of the conversation
            tool_registry: Delegation tools offered to the model
            conversation_store: Store receiving committed turns
            config: Orchestrator configuration
        """
        if not context.session_id:
            raise ValueError("ConversationOrchestrator requires a session_id")
        self.llm = llm
        self.context = context
        self.tools = tool_registry
        self.conversations = conversation_store
        self.config = config or OrchestratorConfig()

        self._history = ConversationHistory(self.config.system_prompt)
        self._prompts = PromptBuilder(tone=self.config.tone)
        self._executor = ToolExecutor(tool_registry)
        self._turn_lock = asyncio.Lock()

    @classmethod
    def initialize(
        cls,
        identity: str,
        session_id: str,
        llm: ILLMProvider,
        memory: Optional[IMemoryClient] = None,
        toolkit: Optional[IToolkitClient] = None,
        integration_store: Optional[IIntegrationStore] = None,
        capabilities: Iterable[Union[Capability, str]] = (),
        tone: Optional[str] = DEFAULT_TONE,
        fallback_connection_ids: Optional[dict[str, str]] = None,
        conversation_store: Optional[IConversationStore] = None,
        config: Optional[OrchestratorConfig] = None,
    ) -> ConversationOrchestrator:
        """Build an orchestrator for one identity and session.

        Args:
            identity: Resolved user identity
            session_id: Chat session identifier
            llm: Base model provider
            memory: Memory client; the model is wrapped by the
                augmentation decorator scoped to (identity, session_id)
            toolkit: Toolkit client used by delegate workers
            integration_store: Store of the identity's connections
            capabilities: Capabilities to expose as delegation tools
            tone: Response tone
            fallback_connection_ids: Development connection ids per connector
            conversation_store: Store receiving committed turns
            config: Base configuration (tone overrides its tone)

        Returns:
            A ready orchestrator whose history holds only the system turn

        Raises:
            UnknownCapabilityError: If a capability name is unknown
            ValueError: If capabilities are requested without a toolkit
        """
        context = UserContext(user_id=identity, session_id=session_id)
        capabilities = list(capabilities)

        registry = None
        if capabilities:
            if toolkit is None:
                raise ValueError("Delegation capabilities require a toolkit client")
            dispatcher = DelegationDispatcher(
                context=context,
                llm=llm,
                toolkit=toolkit,
                integration_store=integration_store,
                fallback_connection_ids=fallback_connection_ids,
            )
            registry = DelegationToolRegistry(dispatcher.dispatch_payload, capabilities)

        model = llm
        if memory is not None:
            model = MemoryAugmentedProvider(
                llm,
                memory,
                user_id=identity,
                session_id=session_id,
            )
        else:
            logger.warning("No memory client configured, memory augmentation disabled")

        config = replace(config or OrchestratorConfig(), tone=tone)

        logger.info(
            f"Initialized orchestrator for session {session_id} "
            f"with {len(registry) if registry else 0} delegation tool(s)"
        )
        return cls(
            llm=model,
            context=context,
            tool_registry=registry,
            conversation_store=conversation_store,
            config=config,
        )

    # ============================================
    # History
    # ============================================

    @property
    def history(self) -> tuple[Turn, ...]:
        return self._history.snapshot()

    @property
    def tone(self) -> Optional[str]:
        return self._prompts.tone

    @property
    def busy(self) -> bool:
        """True while a turn is in flight."""
        return self._turn_lock.locked()

    def clear(self) -> None:
        """Reset the history to the single system turn."""
        self._history.reset()
        logger.info(f"Cleared history of session {self.context.session_id}")

    def snapshot(self) -> tuple[Turn, ...]:
        return self._history.snapshot()

    def restore(self, turns: Iterable[Turn]) -> None:
        """Replace the history wholesale.

        Raises:
            InvalidHistoryError: If the turns do not start with exactly
                one system turn
        """
        self._history.restore(turns)

    # ============================================
    # Turns
    # ============================================

    async def respond(
        self, message: str, additional_context: Optional[str] = None
    ) -> OrchestratorResponse:
        """Process a user message and return the whole response.

        Args:
            message: User's message
            additional_context: Optional context placed before the message

        Returns:
            OrchestratorResponse with text, finish reason and token usage

        Raises:
            OrchestratorError: If augmentation or the model fails. The
                user turn is removed from the history first.
        """
        async with self._turn_lock:
            user_turn = self._begin_turn(message, additional_context)
            result = _TurnResult()
            try:
                async for _ in self._run_turn(result):
                    pass
            except asyncio.CancelledError:
                self._rollback(user_turn, None)
                raise
            except Exception as e:
                self._rollback(user_turn, e)
                raise self._failure(e) from e

            return await self._commit(user_turn, result)

    async def respond_stream(
        self, message: str, additional_context: Optional[str] = None
    ) -> ResponseStream:
        """Process a user message as a stream of chunks.

        Nothing happens until the first chunk is requested. From then on
        the turn lock is held until the stream is done, so the caller must
        drain or close it (``async with`` does the latter). A stream that
        is never iterated leaves the session untouched.

        Args:
            message: User's message
            additional_context: Optional context placed before the message

        Returns:
            ResponseStream of StreamChunk. Iteration raises
            OrchestratorError if the turn fails.
        """
        result = _TurnResult()
        user_turn: Optional[Turn] = None

        async def source() -> AsyncIterator[str]:
            nonlocal user_turn
            await self._turn_lock.acquire()
            try:
                user_turn = self._begin_turn(message, additional_context)
            except BaseException:
                self._turn_lock.release()
                raise

            turn = self._run_turn(result)
            try:
                async for delta in turn:
                    yield delta
            except Exception as e:
                raise self._failure(e) from e
            finally:
                await turn.aclose()

        async def on_commit(text: str) -> OrchestratorResponse:
            try:
                return await self._commit(user_turn, result)
            finally:
                self._turn_lock.release()

        def on_abort(error: Optional[BaseException]) -> None:
            if user_turn is None:
                return
            try:
                self._rollback(user_turn, error)
            finally:
                self._turn_lock.release()

        return ResponseStream(source(), on_commit=on_commit, on_abort=on_abort)

    def _begin_turn(self, message: str, additional_context: Optional[str]) -> Turn:
        content = self._prompts.build_user_content(message, additional_context)
        turn = self._history.append(MessageRole.USER, content)
        logger.info(
            f"Starting turn in session {self.context.session_id} "
            f"(history length {len(self._history)})"
        )
        return turn

    async def _commit(self, user_turn: Turn, result: _TurnResult) -> OrchestratorResponse:
        assistant_turn = self._history.append(MessageRole.ASSISTANT, result.text)
        logger.info(
            f"Committed turn in session {self.context.session_id} "
            f"({result.steps} step(s), {result.usage.total_tokens} tokens)"
        )
        await self._persist([user_turn, assistant_turn])
        return OrchestratorResponse(
            text=result.text,
            finish_reason=result.finish_reason,
            usage=result.usage,
        )

    def _rollback(self, user_turn: Turn, error: Optional[BaseException]) -> None:
        self._history.rollback(user_turn)
        if error is None:
            logger.info(f"Turn cancelled in session {self.context.session_id}, rolled back")
        else:
            logger.error(f"Turn failed in session {self.context.session_id}, rolled back: {error}")

    async def _persist(self, turns: list[Turn]) -> None:
        if not self.conversations:
            return
        try:
            await self.conversations.append_turns(self.context, turns)
        except Exception:
            logger.exception(f"Failed to persist turns of session {self.context.session_id}")

    @staticmethod
    def _failure(error: Exception) -> OrchestratorError:
        if isinstance(error, OrchestratorError):
            return error
        if isinstance(error, AugmentationError):
            return OrchestratorError(
                f"Memory augmentation failed: {error}",
                kind=FailureKind.AUGMENTATION,
                cause=error,
            )
        return OrchestratorError(
            f"Model invocation failed: {error}",
            kind=FailureKind.MODEL_INVOCATION,
            cause=error,
        )

    async def _run_turn(self, result: _TurnResult) -> AsyncIterator[str]:
        """Run the model/tool loop, yielding text deltas as they arrive.

        The tool exchange lives in a working message list only; it never
        enters the history. The last allowed step is offered no tools so
        the model has to answer in text.
        """
        messages = self._history.to_messages()
        tools = self.tools.definitions() if self.tools else []

        for step_number in range(1, self.config.max_steps + 1):
            step_tools = tools if step_number < self.config.max_steps else []
            step = StepAccumulator()

            events = self.llm.chat(
                messages=messages,
                tools=step_tools or None,
                system_prompt=self._history.system_prompt,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            )
            try:
                async for event in events:
                    delta = step.add(event)
                    if delta:
                        yield delta
                    if step.done:
                        break
            finally:
                await events.aclose()
            step.finish()

            result.text += step.text
            result.usage = result.usage + step.usage
            result.finish_reason = step.finish_reason or "stop"
            result.steps = step_number

            if not step.tool_calls:
                return

            logger.info(f"Step {step_number}: dispatching {len(step.tool_calls)} tool call(s)")
            messages.append(
                Message(
                    role=MessageRole.ASSISTANT,
                    content=step.text,
                    tool_calls=step.tool_calls,
                )
            )
            for tool_call in await self._executor.execute_tool_calls(step.tool_calls):
                messages.append(
                    Message(
                        role=MessageRole.TOOL,
                        content=json.dumps(tool_call.result, default=str),
                        tool_calls=[tool_call],
                    )
                )


def initialize_orchestrator(
    identity: str,
    session_id: str,
    llm: ILLMProvider,
    **kwargs,
) -> ConversationOrchestrator:
    """Module-level shortcut for ``ConversationOrchestrator.initialize``."""
    return ConversationOrchestrator.initialize(identity, session_id, llm, **kwargs)
