"""
Error Message Sanitization for API Responses.

Failures from the model, memory, toolkit and database clients can carry
connection strings, keys, upstream URLs and file paths. Every message
leaving the HTTP boundary (JSON error details and SSE ``error`` frames)
goes through ``sanitize_error_message``; the raw error is only logged.

Usage:
    except OrchestratorError as e:
        logger.error(f"Turn failed: {e}")
        raise HTTPException(status_code=502, detail=sanitize_error_message(str(e)))
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional

GENERIC_MESSAGE = "An error occurred"

_ENV_NAMES = (
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "SUPERMEMORY_API_KEY",
    "COMPOSIO_API_KEY",
    "JWT_SECRET",
    "DATABASE_URL",
    "AWS_SECRET_ACCESS_KEY",
)


@dataclass(frozen=True)
class Redaction:
    """One named rewrite rule."""

    name: str
    pattern: str
    replacement: str


# Applied in order; earlier rules see the raw text
DEFAULT_REDACTIONS: tuple[Redaction, ...] = (
    Redaction("traceback", r"Traceback \(most recent call last\):[\s\S]*?(?=\n\n|\n[A-Z]|\Z)", "[STACK_TRACE]"),
    Redaction("source_location", r'File "[^"]+", line \d+', 'File "[REDACTED]", line [REDACTED]'),
    Redaction("env_var", r"\b(?:%s)\b(?:\s*=\s*[^\s,;]+)?" % "|".join(_ENV_NAMES), "[ENV_VAR]"),
    Redaction("database_url", r"postgres(?:ql)?://\S+", "[DATABASE_URL]"),
    Redaction("jwt", r"\beyJ[\w-]*\.eyJ[\w-]*\.[\w-]+", "[JWT_REDACTED]"),
    Redaction("bearer", r"\bbearer\s+[\w.~+/=-]+", "Bearer [REDACTED]"),
    Redaction("authorization", r"\bauthorization\s*[:=]\s*(?!bearer\s)[^\s,;]+", "Authorization: [REDACTED]"),
    Redaction(
        "credential",
        r"\b(x-api-key|api[-_]?key|access[-_]?token|client[-_]?secret|password|secret)[=:\s]+[^\s,;]+",
        r"\1=[REDACTED]",
    ),
    Redaction("provider_key", r"\b(?:sk-(?:ant-)?|sm_)[\w-]{16,}", "[API_KEY]"),
    Redaction("aws_access_key", r"\bAKIA[0-9A-Z]{16}\b", "[AWS_ACCESS_KEY]"),
    Redaction("url", r"https?://[^\s,;'\"]+", "[URL]"),
    Redaction("unix_path", r"/(?:home|root|usr|var|etc|opt|mnt|tmp|app)/[^\s,;]+", "[FILE_PATH]"),
    Redaction("windows_path", r"\b[A-Z]:\\[^\s,;]+", "[FILE_PATH]"),
)


@dataclass
class SanitizationResult:
    """Sanitized message plus the names of the rules that fired."""

    sanitized_message: str
    redactions: list[str] = field(default_factory=list)

    @property
    def was_sanitized(self) -> bool:
        return bool(self.redactions)


class ErrorSanitizer:
    """Applies redaction rules and a length cap to error messages."""

    def __init__(
        self,
        redactions: Optional[tuple[Redaction, ...]] = None,
        max_message_length: int = 500,
    ):
        self.redactions = tuple(redactions or DEFAULT_REDACTIONS)
        self.max_message_length = max_message_length
        self._rules = [
            (rule.name, re.compile(rule.pattern, re.IGNORECASE), rule.replacement)
            for rule in self.redactions
        ]

    def sanitize(self, message: str, error_type: Optional[str] = None) -> SanitizationResult:
        """Make a message safe to return to a client.

        Args:
            message: Raw error message
            error_type: Optional category prefixed to the result

        Returns:
            SanitizationResult with the safe message
        """
        if not message:
            return SanitizationResult(GENERIC_MESSAGE)

        fired: list[str] = []
        for name, pattern, replacement in self._rules:
            message, count = pattern.subn(replacement, message)
            if count:
                fired.append(name)

        if len(message) > self.max_message_length:
            message = message[: self.max_message_length] + "... [TRUNCATED]"
        if not message.strip():
            message = GENERIC_MESSAGE
        if error_type and not message.startswith(error_type):
            message = f"{error_type}: {message}"

        return SanitizationResult(message, fired)

    def is_safe(self, message: str) -> bool:
        """True if no rule would change the message."""
        return not any(pattern.search(message) for _, pattern, _ in self._rules)


_default_sanitizer: Optional[ErrorSanitizer] = None


def get_sanitizer() -> ErrorSanitizer:
    global _default_sanitizer
    if _default_sanitizer is None:
        _default_sanitizer = ErrorSanitizer()
    return _default_sanitizer


def sanitize_error_message(message: str, error_type: Optional[str] = None) -> str:
    """Sanitize with the default rules.

    Example:
        >>> sanitize_error_message("connect to postgresql://u:p@db/chat failed")
        'connect to [DATABASE_URL] failed'
    """
    return get_sanitizer().sanitize(message, error_type).sanitized_message
