"""
Tests for the delegation dispatcher and delegate workers.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from src.supermind.assistant.delegation import (
    Connected,
    DelegateWorker,
    DelegateWorkerContext,
    DelegationDispatcher,
    InMemoryIntegrationStore,
    NotConnected,
    ToolkitError,
)
from src.supermind.assistant.domain.entities import (
    Capability,
    DelegationState,
    Integration,
    MessageRole,
    ToolDefinition,
    UserContext,
)
from src.supermind.assistant.domain.exceptions import ModelInvocationError

from .conftest import ScriptedProvider, error_step, text_step, tool_step

CONTEXT = UserContext(user_id="user-1", session_id="session-1")


def integration(connector, status="active", connection_id="conn-1", user_id="user-1"):
    return Integration(user_id=user_id, connector=connector, connection_id=connection_id, status=status)


def make_dispatcher(provider, toolkit, integrations=(), **kwargs):
    return DelegationDispatcher(
        context=CONTEXT,
        llm=provider,
        toolkit=toolkit,
        integration_store=InMemoryIntegrationStore(integrations),
        **kwargs,
    )


class TestResolveConnection:
    """Tests for connection resolution."""

    @pytest.mark.asyncio
    async def test_active_integration(self, toolkit):
        dispatcher = make_dispatcher(ScriptedProvider(), toolkit, [integration("gmail")])

        resolution = await dispatcher.resolve_connection("user-1", "gmail")

        assert resolution == Connected(connection_id="conn-1")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "record",
        [
            integration("gmail", status="expired"),
            integration("gmail", connection_id=None),
            integration("gmail", user_id="user-2"),
            integration("google_calendar"),
        ],
    )
    async def test_unusable_integration(self, toolkit, record):
        dispatcher = make_dispatcher(ScriptedProvider(), toolkit, [record])

        resolution = await dispatcher.resolve_connection("user-1", Capability.EMAIL)

        assert isinstance(resolution, NotConnected)
        assert resolution.reason.startswith("Gmail not connected")

    @pytest.mark.asyncio
    async def test_fallback_connection_id(self, toolkit):
        dispatcher = make_dispatcher(
            ScriptedProvider(),
            toolkit,
            fallback_connection_ids={"google_calendar": "dev-calendar"},
        )

        resolution = await dispatcher.resolve_connection("user-1", "calendar")

        assert resolution == Connected(connection_id="dev-calendar")

    @pytest.mark.asyncio
    async def test_store_failure_treated_as_not_connected(self, toolkit):
        store = AsyncMock()
        store.get_integration.side_effect = RuntimeError("database down")
        dispatcher = DelegationDispatcher(
            context=CONTEXT,
            llm=ScriptedProvider(),
            toolkit=toolkit,
            integration_store=store,
        )

        resolution = await dispatcher.resolve_connection("user-1", "gmail")

        assert isinstance(resolution, NotConnected)


class TestDispatch:
    """Tests for full delegation round-trips."""

    @pytest.mark.asyncio
    async def test_completed(self, toolkit):
        provider = ScriptedProvider(text_step("Found 2 emails"))
        dispatcher = make_dispatcher(provider, toolkit, [integration("gmail")])

        outcome = await dispatcher.dispatch(Capability.EMAIL, "Find emails from Bob")

        assert outcome.result == "Found 2 emails"
        assert outcome.error is None
        assert outcome.succeeded
        assert outcome.states == [
            DelegationState.REQUESTED,
            DelegationState.CONNECTION_RESOLVED,
            DelegationState.EXECUTING,
            DelegationState.COMPLETED,
        ]
        assert outcome.to_payload() == {"result": "Found 2 emails"}

    @pytest.mark.asyncio
    async def test_unavailable_never_builds_worker(self, toolkit):
        provider = ScriptedProvider()
        dispatcher = make_dispatcher(provider, toolkit)

        outcome = await dispatcher.dispatch("gmail", "Send a note")

        assert outcome.states == [DelegationState.REQUESTED, DelegationState.CONNECTION_UNAVAILABLE]
        assert outcome.to_payload() == {
            "error": "Gmail not connected. Please connect Gmail first in your profile settings."
        }
        assert toolkit.listed == []
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_worker_failure_becomes_error_payload(self, toolkit):
        provider = ScriptedProvider(error_step("rate limited"))
        dispatcher = make_dispatcher(provider, toolkit, [integration("google_calendar")])

        outcome = await dispatcher.dispatch(Capability.CALENDAR, "What's next?")

        assert outcome.state == DelegationState.FAILED
        assert outcome.result is None
        assert outcome.error == "Calendar task failed: rate limited"

    @pytest.mark.asyncio
    async def test_tool_listing_failure_becomes_error_payload(self, toolkit):
        toolkit.list_tools = AsyncMock(side_effect=ToolkitError("Composio down", tool_name="gmail"))
        dispatcher = make_dispatcher(ScriptedProvider(), toolkit, [integration("gmail")])

        outcome = await dispatcher.dispatch(Capability.EMAIL, "Search")

        assert outcome.to_payload() == {"error": "Gmail task failed: Composio down"}

    @pytest.mark.asyncio
    async def test_worker_gets_only_its_toolkit(self, toolkit):
        provider = ScriptedProvider(text_step("Free all day"))
        dispatcher = make_dispatcher(provider, toolkit, [integration("google_calendar", connection_id="conn-cal")])

        await dispatcher.dispatch(Capability.CALENDAR, "Am I free today?")

        call = provider.calls[0]
        assert [t.name for t in call["tools"]] == ["GOOGLECALENDAR_EVENTS_LIST"]
        assert call["system_prompt"].startswith("You are a specialized calendar worker agent")
        assert call["messages"][0].content == "You are a Google Calendar assistant. Am I free today?"
        assert toolkit.listed == ["googlecalendar"]

    @pytest.mark.asyncio
    async def test_concurrent_dispatches_do_not_share_context(self, toolkit):
        contexts = []

        class RecordingWorker:
            def __init__(self, context, toolkit):
                contexts.append(context)
                self.context = context

            async def run(self, task):
                await asyncio.sleep(0)
                return f"{self.context.capability.value}: {task}"

        dispatcher = make_dispatcher(
            ScriptedProvider(),
            toolkit,
            [integration("gmail", connection_id="conn-mail"), integration("google_calendar", connection_id="conn-cal")],
            worker_factory=RecordingWorker,
        )

        mail, calendar = await asyncio.gather(
            dispatcher.dispatch(Capability.EMAIL, "inbox"),
            dispatcher.dispatch(Capability.CALENDAR, "agenda"),
        )

        assert mail.result == "gmail: inbox"
        assert calendar.result == "google_calendar: agenda"
        assert {c.connection_id for c in contexts} == {"conn-mail", "conn-cal"}
        assert contexts[0] is not contexts[1]

    @pytest.mark.asyncio
    async def test_payload_shortcut(self, toolkit):
        dispatcher = make_dispatcher(ScriptedProvider(), toolkit)

        payload = await dispatcher.dispatch_payload(Capability.CALENDAR, "Today")

        assert set(payload) == {"error"}


def worker_context(provider, tools=("GMAIL_FETCH_EMAILS",), capability=Capability.EMAIL):
    return DelegateWorkerContext(
        capability=capability,
        llm=provider,
        connection_id="conn-1",
        user_id="user-1",
        tools=tuple(ToolDefinition(name=n, description=n, parameters={}) for n in tools),
    )


class TestDelegateWorker:
    """Tests for the worker's own tool loop."""

    @pytest.mark.asyncio
    async def test_executes_toolkit_tool_with_connection(self, toolkit):
        toolkit.results["GMAIL_FETCH_EMAILS"] = [{"from": "bob@example.com"}]
        provider = ScriptedProvider(
            tool_step(("t1", "GMAIL_FETCH_EMAILS", {"max_results": 5})),
            text_step("One email from Bob"),
        )
        worker = DelegateWorker(worker_context(provider), toolkit)

        text = await worker.run("Latest email")

        assert text == "One email from Bob"
        assert toolkit.executed == [
            {
                "tool_name": "GMAIL_FETCH_EMAILS",
                "arguments": {"max_results": 5},
                "connection_id": "conn-1",
                "user_id": "user-1",
            }
        ]
        tool_message = provider.calls[1]["messages"][-1]
        assert tool_message.role == MessageRole.TOOL
        assert json.loads(tool_message.content) == {"result": [{"from": "bob@example.com"}]}

    @pytest.mark.asyncio
    async def test_foreign_tool_refused(self, toolkit):
        provider = ScriptedProvider(
            tool_step(("t1", "GOOGLECALENDAR_EVENTS_LIST", {})),
            text_step("I can only access email"),
        )
        worker = DelegateWorker(worker_context(provider), toolkit)

        text = await worker.run("Check my calendar")

        assert text == "I can only access email"
        assert toolkit.executed == []
        payload = json.loads(provider.calls[1]["messages"][-1].content)
        assert payload["recoverable"] is False
        assert "not available" in payload["error"]

    @pytest.mark.asyncio
    async def test_toolkit_error_reported_to_model(self, toolkit):
        toolkit.execute = AsyncMock(side_effect=ToolkitError("Rate limited by Composio", tool_name="GMAIL_FETCH_EMAILS"))
        provider = ScriptedProvider(
            tool_step(("t1", "GMAIL_FETCH_EMAILS", {})),
            text_step("Try again later"),
        )
        worker = DelegateWorker(worker_context(provider), toolkit)

        assert await worker.run("Inbox") == "Try again later"
        payload = json.loads(provider.calls[1]["messages"][-1].content)
        assert payload == {"error": "Rate limited by Composio", "recoverable": True}

    @pytest.mark.asyncio
    async def test_step_limit_returns_last_text(self, toolkit):
        provider = ScriptedProvider(
            tool_step(("t1", "GMAIL_FETCH_EMAILS", {}), text="Looking..."),
            tool_step(("t2", "GMAIL_FETCH_EMAILS", {}), text="Still looking..."),
        )
        worker = DelegateWorker(worker_context(provider), toolkit, max_steps=2)

        assert await worker.run("Inbox") == "Still looking..."

    @pytest.mark.asyncio
    async def test_model_error_propagates(self, toolkit):
        worker = DelegateWorker(worker_context(ScriptedProvider(error_step("bad request"))), toolkit)

        with pytest.raises(ModelInvocationError):
            await worker.run("Inbox")

    @pytest.mark.asyncio
    async def test_model_streams_closed_after_each_step(self, toolkit):
        provider = ScriptedProvider(
            tool_step(("t1", "GMAIL_FETCH_EMAILS", {})),
            text_step("Done"),
        )
        worker = DelegateWorker(worker_context(provider), toolkit)

        await worker.run("Inbox")

        assert provider.closed == 2

    @pytest.mark.asyncio
    async def test_model_stream_closed_on_error(self, toolkit):
        provider = ScriptedProvider(error_step("bad request"))
        worker = DelegateWorker(worker_context(provider), toolkit)

        with pytest.raises(ModelInvocationError):
            await worker.run("Inbox")

        assert provider.closed == 1

    def test_toolset_is_bound_to_context(self, toolkit):
        worker = DelegateWorker(worker_context(ScriptedProvider(), tools=("A", "B")), toolkit)

        assert worker.toolset == frozenset({"A", "B"})
