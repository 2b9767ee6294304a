"""
Tests for the assistant HTTP API.

Authentication is replaced with a fixed identity through FastAPI
dependency overrides; the model is scripted.
"""

import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.supermind.assistant.api.router import (
    create_assistant_dependencies,
    get_user_context,
    router,
)
from src.supermind.assistant.domain.entities import UserContext
from src.supermind.assistant.orchestrator import ConversationOrchestrator, OrchestratorPool
from src.supermind.assistant.streaming import SSEDecoder

from .conftest import ScriptedProvider, error_step, text_step


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def pool(provider):
    def factory(context):
        return ConversationOrchestrator.initialize(
            context.user_id, context.session_id, provider, tone=None
        )

    return OrchestratorPool(factory)


@pytest.fixture
def app(pool):
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_user_context] = lambda: UserContext(user_id="user-1")
    create_assistant_dependencies(pool, model_name="scripted")
    yield app
    create_assistant_dependencies(None)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


def stream_body(*contents, session_id="session-1", role="user"):
    return {
        "sessionId": session_id,
        "messages": [{"role": role, "content": c} for c in contents],
    }


def decode(text):
    decoder = SSEDecoder()
    return decoder.feed(text) + decoder.flush()


class TestChatStream:
    """Tests for the SSE chat endpoint."""

    def test_streams_connection_chunks_and_complete(self, client, provider):
        provider.steps.append(text_step("Hello", " there"))

        response = client.post("/api/chat/stream", json=stream_body("Hi"))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert response.headers["x-accel-buffering"] == "no"

        messages = decode(response.text)
        assert [m.event for m in messages] == ["connection", "message", "message", "complete"]
        assert json.loads(messages[0].data) == {
            "type": "connection",
            "status": "connected",
            "userId": "user-1",
        }
        assert [(m.id, m.data) for m in messages[1:3]] == [("1", "Hello"), ("2", " there")]
        assert messages[-1].data == "[DONE]"

    def test_user_messages_combined(self, client, provider):
        provider.steps.append(text_step("Ok"))

        client.post("/api/chat/stream", json=stream_body("First part", "Second part"))

        assert provider.calls[0]["messages"][-1].content == "First part\n\nSecond part"

    def test_turn_committed_after_stream(self, client, provider):
        provider.steps.append(text_step("Hello"))

        client.post("/api/chat/stream", json=stream_body("Hi"))
        history = client.get("/api/chat/sessions/session-1/history").json()

        assert history["turns"] == [
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello"},
        ]

    def test_model_failure_ends_with_error_frame(self, client, provider):
        provider.steps.append(error_step("model exploded"))

        response = client.post("/api/chat/stream", json=stream_body("Hi"))

        messages = decode(response.text)
        assert [m.event for m in messages] == ["connection", "error"]
        assert json.loads(messages[-1].data) == {"error": "Model invocation failed: model exploded"}

        history = client.get("/api/chat/sessions/session-1/history").json()
        assert history["turns"] == []

    def test_no_user_messages(self, client, provider):
        response = client.post("/api/chat/stream", json=stream_body("Earlier answer", role="assistant"))

        messages = decode(response.text)
        assert [m.event for m in messages] == ["connection", "error"]
        assert json.loads(messages[-1].data) == {"error": "No user messages found in request"}
        assert provider.calls == []

    def test_empty_message_list_rejected(self, client):
        response = client.post("/api/chat/stream", json={"sessionId": "session-1", "messages": []})

        assert response.status_code == 422


class TestRespond:
    """Tests for the buffered chat endpoint."""

    def test_returns_text_and_usage(self, client, provider):
        provider.steps.append(text_step("Hello", usage=(12, 3)))

        response = client.post("/api/chat/respond", json={"sessionId": "session-1", "message": "Hi"})

        assert response.status_code == 200
        assert response.json() == {
            "text": "Hello",
            "finishReason": "stop",
            "usage": {"inputTokens": 12, "outputTokens": 3, "totalTokens": 15},
        }

    def test_additional_context(self, client, provider):
        provider.steps.append(text_step("Ok"))

        client.post(
            "/api/chat/respond",
            json={"sessionId": "session-1", "message": "Hi", "additionalContext": "Today is Monday"},
        )

        assert provider.calls[0]["messages"][-1].content == "Today is Monday\n\nUser message: Hi"

    def test_failure_is_bad_gateway(self, client, provider):
        provider.steps.append(error_step("model exploded"))

        response = client.post("/api/chat/respond", json={"sessionId": "session-1", "message": "Hi"})

        assert response.status_code == 502
        assert response.json()["detail"] == "Model invocation failed: model exploded"


class TestSessions:
    """Tests for session history endpoints."""

    def test_clear_history(self, client, provider):
        provider.steps.append(text_step("Hello"))
        client.post("/api/chat/respond", json={"sessionId": "session-1", "message": "Hi"})

        response = client.delete("/api/chat/sessions/session-1/history")

        assert response.status_code == 204
        history = client.get("/api/chat/sessions/session-1/history").json()
        assert history == {"sessionId": "session-1", "turns": []}

    def test_sessions_isolated_per_user(self, app, client, provider, pool):
        provider.steps.append(text_step("Hello"))
        client.post("/api/chat/respond", json={"sessionId": "session-1", "message": "Hi"})

        app.dependency_overrides[get_user_context] = lambda: UserContext(user_id="user-2")
        history = client.get("/api/chat/sessions/session-1/history").json()

        assert history["turns"] == []
        assert len(pool) == 2


class TestAvailability:
    """Tests for health and initialization checks."""

    def test_health(self, client):
        assert client.get("/api/chat/health").json() == {
            "status": "ok",
            "model": "scripted",
            "sessions": 0,
        }

    def test_uninitialized_assistant(self, client):
        create_assistant_dependencies(None)

        response = client.post("/api/chat/respond", json={"sessionId": "session-1", "message": "Hi"})

        assert response.status_code == 503
        assert response.json()["detail"] == "Assistant not initialized"
        assert client.get("/api/chat/health").json()["status"] == "unavailable"
