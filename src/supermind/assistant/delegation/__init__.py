"""Delegation of sub-tasks to capability-scoped workers."""

from .dispatcher import (
    Connected,
    ConnectionResolution,
    DelegationDispatcher,
    NotConnected,
)
from .integrations import InMemoryIntegrationStore, PostgresIntegrationStore
from .registry import (
    CAPABILITY_SPECS,
    CapabilitySpec,
    DelegationTool,
    DelegationToolRegistry,
    get_capability_spec,
    parse_capability,
)
from .toolkits import ComposioConfig, ComposioToolkitClient, ToolkitError
from .worker import DelegateWorker, DelegateWorkerContext

__all__ = [
    "CAPABILITY_SPECS",
    "CapabilitySpec",
    "ComposioConfig",
    "ComposioToolkitClient",
    "Connected",
    "ConnectionResolution",
    "DelegateWorker",
    "DelegateWorkerContext",
    "DelegationDispatcher",
    "DelegationTool",
    "DelegationToolRegistry",
    "InMemoryIntegrationStore",
    "NotConnected",
    "PostgresIntegrationStore",
    "ToolkitError",
    "get_capability_spec",
    "parse_capability",
]
