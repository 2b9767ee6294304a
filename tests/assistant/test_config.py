"""
Tests for settings and application wiring.
"""

import pytest

from src.supermind.assistant.app import build_pool
from src.supermind.assistant.config import DEFAULT_CAPABILITIES, AssistantSettings
from src.supermind.assistant.domain.entities import DEFAULT_TONE, UserContext
from src.supermind.assistant.domain.exceptions import UnknownCapabilityError
from src.supermind.assistant.memory import MemoryAugmentedProvider

from .conftest import FakeMemory, FakeToolkit, ScriptedProvider


class TestAssistantSettings:
    """Tests for reading settings from the environment."""

    def test_defaults(self):
        settings = AssistantSettings.from_env({})

        assert settings.capabilities == DEFAULT_CAPABILITIES
        assert settings.tone == DEFAULT_TONE
        assert settings.max_tool_steps == 5
        assert settings.max_sessions == 256
        assert not settings.has_llm

    def test_values_from_environment(self):
        settings = AssistantSettings.from_env(
            {
                "ANTHROPIC_BEDROCK_REGION": "us-west-2",
                "DELEGATION_CAPABILITIES": "gmail, ",
                "GMAIL_CONNECTION_ID": "ca_mail",
                "GOOGLE_CALENDAR_CONNECTION_ID": "ca_cal",
                "ASSISTANT_TONE": "professional and friendly",
                "MAX_TOOL_STEPS": "3",
                "ASSISTANT_MAX_SESSIONS": "lots",
            }
        )

        assert settings.uses_anthropic
        assert settings.capabilities == ["gmail"]
        assert settings.fallback_connection_ids == {"gmail": "ca_mail", "google_calendar": "ca_cal"}
        assert settings.tone == "professional and friendly"
        assert settings.max_tool_steps == 3
        assert settings.max_sessions == 256

    def test_empty_capabilities_and_tone(self):
        settings = AssistantSettings.from_env({"DELEGATION_CAPABILITIES": "", "ASSISTANT_TONE": ""})

        assert settings.capabilities == []
        assert settings.tone is None


class TestBuildPool:
    """Tests for wiring orchestrators from settings."""

    @pytest.mark.asyncio
    async def test_orchestrators_get_configured_collaborators(self):
        settings = AssistantSettings(max_tool_steps=3, max_sessions=10)
        pool = build_pool(settings, ScriptedProvider(), memory=FakeMemory(), toolkit=FakeToolkit())

        orchestrator = await pool.get(UserContext(user_id="user-1", session_id="session-1"))

        assert isinstance(orchestrator.llm, MemoryAugmentedProvider)
        assert orchestrator.config.max_steps == 3
        assert [t.name for t in orchestrator.tools.definitions()] == [
            "delegate_to_gmail",
            "delegate_to_calendar",
        ]
        assert pool.max_sessions == 10

    @pytest.mark.asyncio
    async def test_delegation_disabled_without_toolkit(self):
        pool = build_pool(AssistantSettings(), ScriptedProvider())

        orchestrator = await pool.get(UserContext(user_id="user-1", session_id="session-1"))

        assert orchestrator.tools is None

    def test_unknown_capability_fails_fast(self):
        settings = AssistantSettings(capabilities=["gmail", "slack"])

        with pytest.raises(UnknownCapabilityError):
            build_pool(settings, ScriptedProvider(), toolkit=FakeToolkit())
