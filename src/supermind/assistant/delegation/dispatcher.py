"""
Delegation dispatcher.

Resolves a capability to a live upstream connection and runs one
instruction through a freshly built delegate worker. ``dispatch`` never
raises past its boundary: every round-trip ends in a
``DelegationOutcome`` carrying either a result or an error, so the
orchestrating model can phrase failures itself.

Round-trip states:
    REQUESTED -> CONNECTION_RESOLVED | CONNECTION_UNAVAILABLE
    CONNECTION_RESOLVED -> EXECUTING -> COMPLETED | FAILED
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union

from ..domain.entities import (
    Capability,
    DelegationOutcome,
    DelegationState,
    UserContext,
)
from ..domain.ports import IIntegrationStore, ILLMProvider, IToolkitClient
from .registry import get_capability_spec, parse_capability
from .worker import DelegateWorker, DelegateWorkerContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Connected:
    """The capability has an active upstream connection."""

    connection_id: str


@dataclass(frozen=True)
class NotConnected:
    """The capability is known but has no active connection."""

    reason: str


ConnectionResolution = Union[Connected, NotConnected]

WorkerFactory = Callable[[DelegateWorkerContext, IToolkitClient], DelegateWorker]


class DelegationDispatcher:
    """Dispatches delegation tasks for one identity.

    The dispatcher holds only immutable configuration. Each ``dispatch``
    builds its own worker context, so concurrent dispatches share no
    mutable state.

    Usage:
        dispatcher = DelegationDispatcher(
            context=user_context,
            llm=provider,
            toolkit=composio_client,
            integration_store=store,
        )
        outcome = await dispatcher.dispatch(Capability.EMAIL, "Find today's emails")
        payload = outcome.to_payload()  # {"result": ...} or {"error": ...}
    """

    def __init__(
        self,
        context: UserContext,
        llm: ILLMProvider,
        toolkit: IToolkitClient,
        integration_store: Optional[IIntegrationStore] = None,
        fallback_connection_ids: Optional[dict[str, str]] = None,
        worker_max_steps: int = 5,
        worker_factory: Optional[WorkerFactory] = None,
    ):
        """Initialize the dispatcher.

        Args:
            context: Identity the delegations act for
            llm: Model handle used by delegate workers
            toolkit: Toolkit client executing capability tools
            integration_store: Store of the identity's connections
            fallback_connection_ids: Connector -> connection id used when the
                store has no active record (development setups)
            worker_max_steps: Step limit of each delegate worker
            worker_factory: Builds the worker for a context (tests)
        """
        self.context = context
        self.llm = llm
        self.toolkit = toolkit
        self.integration_store = integration_store
        self.fallback_connection_ids = dict(fallback_connection_ids or {})
        self.worker_max_steps = worker_max_steps
        self._worker_factory = worker_factory or self._default_worker

    def _default_worker(
        self, context: DelegateWorkerContext, toolkit: IToolkitClient
    ) -> DelegateWorker:
        return DelegateWorker(context, toolkit, max_steps=self.worker_max_steps)

    async def resolve_connection(
        self, identity: str, capability: Union[Capability, str]
    ) -> ConnectionResolution:
        """Find the active upstream connection of a capability.

        Args:
            identity: User identity
            capability: Capability (or its name)

        Returns:
            Connected with the connection id, or NotConnected

        Raises:
            UnknownCapabilityError: If the capability is unknown
        """
        capability = parse_capability(capability)
        spec = get_capability_spec(capability)
        connector = capability.value

        if self.integration_store:
            try:
                integration = await self.integration_store.get_integration(identity, connector)
                if integration and integration.is_active:
                    return Connected(connection_id=integration.connection_id)
                if integration:
                    logger.info(
                        f"{connector} connection for {identity} is {integration.status}"
                    )
            except Exception as e:
                logger.warning(f"Integration lookup failed for {connector}: {e}")

        fallback = self.fallback_connection_ids.get(connector)
        if fallback:
            logger.debug(f"Using fallback connection for {connector}")
            return Connected(connection_id=fallback)

        return NotConnected(reason=spec.unavailable_message)

    async def dispatch(
        self, capability: Union[Capability, str], instruction: str
    ) -> DelegationOutcome:
        """Run one instruction against one capability.

        Never raises, except for task cancellation, which propagates.

        Args:
            capability: Target capability
            instruction: Natural-language task

        Returns:
            DelegationOutcome with result or error and the visited states
        """
        capability = parse_capability(capability)
        spec = get_capability_spec(capability)
        outcome = DelegationOutcome(capability=capability, states=[DelegationState.REQUESTED])

        resolution = await self.resolve_connection(self.context.user_id, capability)
        if isinstance(resolution, NotConnected):
            outcome.states.append(DelegationState.CONNECTION_UNAVAILABLE)
            outcome.error = resolution.reason
            logger.info(f"Delegation to {capability.value} unavailable: not connected")
            return outcome

        outcome.states.append(DelegationState.CONNECTION_RESOLVED)
        outcome.states.append(DelegationState.EXECUTING)
        logger.info(f"Delegating task to {capability.value} worker")

        try:
            tools = await self.toolkit.list_tools(spec.toolkit)
            worker_context = DelegateWorkerContext(
                capability=capability,
                llm=self.llm,
                connection_id=resolution.connection_id,
                user_id=self.context.user_id,
                tools=tuple(tools),
            )
            worker = self._worker_factory(worker_context, self.toolkit)
            outcome.result = await worker.run(instruction)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Delegation to {capability.value} failed: {e}")
            outcome.states.append(DelegationState.FAILED)
            outcome.error = f"{spec.failure_prefix}: {e}"
            return outcome

        outcome.states.append(DelegationState.COMPLETED)
        return outcome

    async def dispatch_payload(
        self, capability: Capability, instruction: str
    ) -> dict[str, str]:
        """``dispatch`` reduced to the tool payload, for the tool registry."""
        outcome = await self.dispatch(capability, instruction)
        return outcome.to_payload()
