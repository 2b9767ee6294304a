"""
Assistant configuration.

Settings are read from environment variables (a ``.env`` file is loaded
by the application entry point). JWT settings live in ``api.auth``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from .domain.entities import DEFAULT_TONE, Capability

logger = logging.getLogger(__name__)

DEFAULT_CAPABILITIES = [Capability.EMAIL.value, Capability.CALENDAR.value]


def _int(environ: Mapping[str, str], name: str, default: int) -> int:
    value = environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {value!r}, using {default}")
        return default


@dataclass
class AssistantSettings:
    """Runtime settings of the assistant service.

    Attributes:
        anthropic_api_key: Anthropic API key
        anthropic_model: Claude model (Bedrock model id when using Bedrock)
        anthropic_bedrock_region: AWS region; enables Bedrock
        openai_api_key: OpenAI API key (fallback provider)
        openai_model: OpenAI model
        supermemory_api_key: Enables memory augmentation
        supermemory_base_url: Supermemory API base URL
        composio_api_key: Enables delegation to toolkits
        composio_base_url: Composio API base URL
        tone: Response tone appended to user turns
        capabilities: Delegation capabilities to expose
        fallback_connection_ids: Development connection id per connector
        max_tool_steps: Maximum model steps per turn
        database_url: PostgreSQL URL for conversation and integration stores
        max_sessions: Maximum number of live orchestrators
    """

    anthropic_api_key: Optional[str] = None
    anthropic_model: Optional[str] = None
    anthropic_bedrock_region: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"
    supermemory_api_key: Optional[str] = None
    supermemory_base_url: str = "https://api.supermemory.ai"
    composio_api_key: Optional[str] = None
    composio_base_url: str = "https://backend.composio.dev"
    tone: Optional[str] = DEFAULT_TONE
    capabilities: list[str] = field(default_factory=lambda: list(DEFAULT_CAPABILITIES))
    fallback_connection_ids: dict[str, str] = field(default_factory=dict)
    max_tool_steps: int = 5
    database_url: Optional[str] = None
    max_sessions: int = 256

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> AssistantSettings:
        """Build settings from environment variables."""
        env = os.environ if environ is None else environ

        capabilities_raw = env.get("DELEGATION_CAPABILITIES")
        if capabilities_raw is None:
            capabilities = list(DEFAULT_CAPABILITIES)
        else:
            capabilities = [c.strip() for c in capabilities_raw.split(",") if c.strip()]

        fallback_connection_ids = {}
        if env.get("GMAIL_CONNECTION_ID"):
            fallback_connection_ids[Capability.EMAIL.value] = env["GMAIL_CONNECTION_ID"]
        if env.get("GOOGLE_CALENDAR_CONNECTION_ID"):
            fallback_connection_ids[Capability.CALENDAR.value] = env["GOOGLE_CALENDAR_CONNECTION_ID"]

        return cls(
            anthropic_api_key=env.get("ANTHROPIC_API_KEY") or None,
            anthropic_model=env.get("ANTHROPIC_MODEL") or None,
            anthropic_bedrock_region=env.get("ANTHROPIC_BEDROCK_REGION") or None,
            openai_api_key=env.get("OPENAI_API_KEY") or None,
            openai_model=env.get("OPENAI_MODEL") or "gpt-4o",
            supermemory_api_key=env.get("SUPERMEMORY_API_KEY") or None,
            supermemory_base_url=env.get("SUPERMEMORY_BASE_URL") or "https://api.supermemory.ai",
            composio_api_key=env.get("COMPOSIO_API_KEY") or None,
            composio_base_url=env.get("COMPOSIO_BASE_URL") or "https://backend.composio.dev",
            tone=env.get("ASSISTANT_TONE", DEFAULT_TONE) or None,
            capabilities=capabilities,
            fallback_connection_ids=fallback_connection_ids,
            max_tool_steps=_int(env, "MAX_TOOL_STEPS", 5),
            database_url=env.get("DATABASE_URL") or None,
            max_sessions=_int(env, "ASSISTANT_MAX_SESSIONS", 256),
        )

    @property
    def uses_anthropic(self) -> bool:
        return bool(self.anthropic_api_key or self.anthropic_bedrock_region)

    @property
    def has_llm(self) -> bool:
        return self.uses_anthropic or bool(self.openai_api_key)
