"""
Exceptions raised by the assistant core.

Fatal failures of a turn are surfaced to callers as a single
``OrchestratorError`` carrying the underlying cause. Non-fatal delegation
problems never appear here; they travel as ``DelegationOutcome`` payloads.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class FailureKind(str, Enum):
    """Which collaborator caused a fatal turn failure."""

    AUGMENTATION = "augmentation"
    MODEL_INVOCATION = "model_invocation"


class AssistantError(Exception):
    """Base exception for the assistant package."""


class AugmentationError(AssistantError):
    """The memory augmentation step failed."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class ModelInvocationError(AssistantError):
    """The model returned an error event or a malformed response."""

    def __init__(self, message: str, error_type: Optional[str] = None):
        super().__init__(message)
        self.error_type = error_type


class OrchestratorError(AssistantError):
    """A turn failed and was rolled back.

    Attributes:
        kind: Collaborator that failed
        cause: The underlying exception (also chained as ``__cause__``)
    """

    def __init__(self, message: str, kind: FailureKind, cause: Optional[Exception] = None):
        super().__init__(message)
        self.kind = kind
        self.cause = cause


class InvalidHistoryError(AssistantError, ValueError):
    """A history snapshot does not start with exactly one system turn."""


class UnknownCapabilityError(AssistantError, ValueError):
    """A capability name is not part of the registry."""

    def __init__(self, name: str):
        super().__init__(f"Unknown delegation capability: {name!r}")
        self.name = name
