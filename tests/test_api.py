from __future__ import annotations

import json
from dataclasses import replace

import httpx
import pytest
from fastapi.testclient import TestClient

from hypo.api.dependencies import build_container
from hypo.api.main import create_app
from hypo.llm.backends import OllamaBackend, SonarBackend
from hypo.llm.errors import BackendError, ErrorKind
from hypo.llm.gateway import ProviderGateway


def parse_sse(body: str):
    frames = [frame for frame in body.split("\n\n") if frame.strip()]
    assert all(frame.startswith("data: ") for frame in frames)
    return [json.loads(frame[len("data: "):]) for frame in frames]


@pytest.fixture
def make_client(settings):
    def factory(*backends, **overrides):
        container = build_container(
            replace(settings, **overrides),
            gateway=ProviderGateway(list(backends), priority=[b.name for b in backends]),
        )
        return TestClient(create_app(container)), container

    return factory


def test_chat_returns_full_reply(make_client, fake_backend):
    client, _ = make_client(fake_backend)

    r = client.post("/chat", json={"message": "Hello"})

    assert r.status_code == 200
    body = r.json()
    assert body["response"] == "Hello from the fake backend"
    assert body["conversationId"].startswith("conv_")
    assert body["service"] == "fake"
    assert body["fromCache"] is False


def test_chat_stream_frames(make_client, fake_backend):
    client, _ = make_client(fake_backend)

    r = client.post("/chat/stream", json={"message": "Hello", "conversationId": "conv_stream"})

    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")
    assert r.headers["x-conversation-id"] == "conv_stream"

    events = parse_sse(r.text)
    assert [e["type"] for e in events] == ["chunk", "chunk", "chunk", "done"]
    assert events[0] == {"type": "chunk", "content": "Hello"}
    done = events[-1]
    assert done["fullText"] == "Hello from the fake backend"
    assert done["conversationId"] == "conv_stream"
    assert done["fromCache"] is False
    assert done["service"] == "fake"
    assert isinstance(done["processingTime"], int)


def test_chat_stream_error_frame(make_client, backend_factory):
    backend = backend_factory(error=BackendError(ErrorKind.MODEL_NOT_FOUND, original_error="404 model"))
    client, _ = make_client(backend, app_env="development")

    r = client.post("/chat/stream", json={"message": "Hello", "conversationId": "conv_err"})

    assert r.status_code == 200
    events = parse_sse(r.text)
    assert len(events) == 1
    assert events[0]["type"] == "error"
    assert events[0]["errorType"] == "model_not_found"
    assert events[0]["originalError"] == "404 model"
    assert events[0]["conversationId"] == "conv_err"
    assert events[0]["suggestion"]


def test_chat_json_backend_error(make_client, backend_factory):
    client, _ = make_client(backend_factory(error=BackendError(ErrorKind.BACKEND_UNREACHABLE)))

    r = client.post("/chat", json={"message": "Hello"})

    assert r.status_code == 503
    assert r.json()["error"] == "backend_error"
    assert r.json()["errorType"] == "backend_unreachable"


def test_cooldown_returns_429_with_wait_time(make_client, fake_backend):
    client, _ = make_client(fake_backend, rate_limit_cooldown_seconds=3)

    assert client.post("/chat", json={"message": "Hello"}).status_code == 200
    r = client.post("/chat/stream", json={"message": "Hello again"})

    assert r.status_code == 429
    body = r.json()
    assert body["error"] == "Too many requests"
    assert body["waitTime"] == 3
    assert r.headers["retry-after"] == "3"


def test_input_validation(make_client, fake_backend):
    client, _ = make_client(fake_backend)

    assert client.post("/chat", json={"message": ""}).status_code == 422
    r = client.post("/chat", json={"message": "   "})
    assert r.status_code == 400
    assert r.json()["error"] == "validation_error"
    r = client.post("/chat", json={"message": "Hello", "model": "no-such-model"})
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_argument"


def test_conversation_history_and_delete(make_client, fake_backend):
    client, container = make_client(fake_backend)
    client.post("/chat", json={"message": "Any meeting today?", "conversationId": "conv_h"})

    r = client.get("/chat/conversations/conv_h", params={"limit": 20})
    assert r.status_code == 200
    body = r.json()
    assert body["conversationId"] == "conv_h"
    assert body["totalMessages"] == 2
    assert body["hasMore"] is False
    assert [m["sender"] for m in body["messages"]] == ["user", "assistant"]
    assert body["context"]["topics"] == ["meeting"]

    r = client.delete("/chat/conversations/conv_h")
    assert r.json()["deleted"] is True
    assert container.store.exists("conv_h") is False

    r = client.get("/chat/conversations/conv_h")
    assert r.status_code == 404
    assert r.json()["error"] == "conversation_not_found"


def test_stats(make_client, fake_backend):
    client, _ = make_client(fake_backend)
    client.post("/chat", json={"message": "Hello"})

    body = client.get("/chat/stats").json()
    assert body["cache"]["size"] == 1
    assert body["conversations"]["active_conversations"] == 1
    assert "cooldown_seconds" in body["rateLimit"]


def test_health(make_client, backend_factory):
    client, _ = make_client(backend_factory(name="up"), backend_factory(name="off", configured=False))
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"
    assert {s["service"]: s["connection"] for s in r.json()["services"]} == {
        "up": "connected",
        "off": "not_configured",
    }

    client, _ = make_client(backend_factory(name="down", connected=False))
    r = client.get("/health")
    assert r.status_code == 503
    assert r.json()["status"] == "unhealthy"


def test_readiness(make_client, backend_factory):
    client, _ = make_client(backend_factory(name="off", configured=False))
    assert client.get("/health/ready").status_code == 503

    client, _ = make_client(backend_factory(name="on"))
    assert client.get("/health/ready").json()["status"] == "ready"


def test_models_listing(make_client, fake_backend):
    client, _ = make_client(fake_backend)

    body = client.get("/models").json()

    assert body["default"] == {"service": "fake", "model": "fake-model"}
    assert body["backends"][0]["service"] == "fake"


def test_sonar_models_and_switch(make_client):
    client, container = make_client(SonarBackend("key"))

    body = client.get("/models/sonar").json()
    assert body["current"]["id"] == "sonar"
    assert len(body["models"]) == 4

    r = client.post("/models/sonar/switch", json={"model": "sonar-reasoning"})
    assert r.status_code == 200
    assert container.gateway.get("sonar").default_model == "sonar-reasoning"

    assert client.post("/models/sonar/switch", json={"model": "gpt-4"}).status_code == 400


def test_local_model_actions(make_client):
    def handler(request):
        if request.url.path == "/api/tags":
            return httpx.Response(200, json={"models": [{"name": "llama3.2:latest"}]})
        raise httpx.ConnectError("refused", request=request)

    transport_client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://ollama.test")
    client, _ = make_client(OllamaBackend(base_url="http://ollama.test", model="llama3.2", client=transport_client))

    r = client.post("/models/local", json={"action": "list"})
    assert r.status_code == 200
    assert r.json()["models"][0]["name"] == "llama3.2:latest"

    assert client.post("/models/local", json={"action": "pull"}).status_code == 400

    r = client.post("/models/local", json={"action": "pull", "modelName": "mistral"})
    assert r.status_code == 503
    assert r.json()["errorType"] == "backend_unreachable"


def test_lifespan_closes_backends(make_client, fake_backend):
    client, _ = make_client(fake_backend)
    with client:
        assert client.get("/health").status_code == 200
    assert fake_backend.closed is True


def test_cooldown_is_keyed_by_forwarded_client(make_client, fake_backend):
    client, _ = make_client(fake_backend, rate_limit_cooldown_seconds=3)

    first = client.post("/chat", json={"message": "Hello"}, headers={"X-Forwarded-For": "10.0.0.1, 172.16.0.1"})
    other = client.post("/chat", json={"message": "Hello"}, headers={"X-Forwarded-For": "10.0.0.2"})
    again = client.post("/chat", json={"message": "Hello"}, headers={"X-Forwarded-For": "10.0.0.1"})

    assert first.status_code == 200
    assert other.status_code == 200
    assert again.status_code == 429


def test_audit_and_security_headers(make_client, fake_backend):
    client, _ = make_client(fake_backend, enable_audit_logging=True)

    r = client.post("/chat/stream", json={"message": "Hello"})

    assert r.headers["x-content-type-options"] == "nosniff"
    assert r.headers["x-frame-options"] == "DENY"
    assert r.headers["x-response-time"].endswith("s")
