"""
Prompt Builder for the Conversation Orchestrator.

Builds the stored content of a user turn:
- Prefixing optional additional context
- Appending the configured response tone
"""

from __future__ import annotations

import logging
from typing import Optional

from ..domain.entities import ToneDirective

logger = logging.getLogger(__name__)


class PromptBuilder:
    """Transforms raw user messages into stored user turns.

    The transform is deterministic: the same message, context and tone
    always produce the same content.

    Usage:
        builder = PromptBuilder(tone="concise and direct")
        content = builder.build_user_content("What's on my calendar?")
    """

    def __init__(self, tone: Optional[str] = None):
        """Initialize the prompt builder.

        Args:
            tone: Configured tone string. Unknown values are kept so the
                warning is emitted on every turn that uses them.
        """
        self.tone = tone
        self.directive = ToneDirective.parse(tone)

    def apply_tone(self, content: str) -> str:
        """Append the tone suffix, if a known tone is configured."""
        if not self.tone:
            return content
        if self.directive is None:
            logger.warning(f"Invalid response tone: {self.tone!r}")
            return content
        return content + self.directive.suffix

    def build_user_content(self, message: str, additional_context: Optional[str] = None) -> str:
        """Build the content stored for a user turn.

        Args:
            message: Raw user message
            additional_context: Optional context placed before the message

        Returns:
            Content with context prefix and tone suffix applied
        """
        content = f"{additional_context}\n\nUser message: {message}" if additional_context else message
        return self.apply_tone(content)
