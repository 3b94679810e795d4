from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from hypo.llm.backends import OllamaBackend
from hypo.llm.backends.ollama import build_prompt
from hypo.llm.errors import BackendError, ErrorKind

MESSAGES = [
    {"role": "system", "content": "Be brief."},
    {"role": "user", "content": "Hi"},
    {"role": "assistant", "content": "Hello!"},
    {"role": "user", "content": "Any meetings today?"},
]


def ndjson(*objects):
    return "\n".join(json.dumps(o) for o in objects).encode() + b"\n"


def make_backend(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://ollama.test")
    return OllamaBackend(base_url="http://ollama.test", model="llama3.2", client=client, **kwargs)


def collect(backend, messages=MESSAGES):
    async def run():
        return [text async for text in backend.generate_stream(messages)]

    return asyncio.run(run())


def test_build_prompt_flattens_roles():
    assert build_prompt(MESSAGES) == (
        "System: Be brief.\n\n"
        "Human: Hi\n\n"
        "Assistant: Hello!\n\n"
        "Human: Any meetings today?\n\n"
        "Assistant: "
    )


def test_generate_stream_uses_generate_api():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            content=ndjson(
                {"response": "You have ", "done": False},
                {"response": "two meetings.", "done": False},
                {"response": "", "done": True, "eval_count": 5},
            ),
        )

    chunks = collect(make_backend(handler))

    assert chunks == ["You have ", "two meetings."]
    assert seen["path"] == "/api/generate"
    assert seen["body"]["model"] == "llama3.2"
    assert seen["body"]["stream"] is True
    assert seen["body"]["prompt"].endswith("Human: Any meetings today?\n\nAssistant: ")


def test_generate_stream_uses_chat_api_when_enabled():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            content=ndjson({"message": {"role": "assistant", "content": "Hi!"}, "done": False}, {"done": True}),
        )

    assert collect(make_backend(handler, use_chat_api=True)) == ["Hi!"]
    assert seen["path"] == "/api/chat"
    assert seen["body"]["messages"] == MESSAGES


def test_malformed_lines_are_skipped():
    def handler(request):
        return httpx.Response(200, content=b'{"response": "a"}\nnot json\n\n{"response": "b", "done": true}\n')

    assert collect(make_backend(handler)) == ["a", "b"]


def raise_(exc_type, message):
    def handler(request):
        raise exc_type(message, request=request)

    return handler


def respond(status, error):
    def handler(request):
        return httpx.Response(status, json={"error": error})

    return handler


@pytest.mark.parametrize(
    "handler,kind",
    [
        (raise_(httpx.ConnectError, "Connection refused"), ErrorKind.BACKEND_UNREACHABLE),
        (raise_(httpx.ReadTimeout, "timed out"), ErrorKind.TIMEOUT),
        (raise_(httpx.RemoteProtocolError, "peer closed connection"), ErrorKind.NETWORK_ERROR),
        (respond(404, "model 'llama3.2' not found, try pulling it first"), ErrorKind.MODEL_NOT_FOUND),
        (
            respond(500, "model requires more system memory (8.0 GiB) than is available (4.0 GiB)"),
            ErrorKind.OUT_OF_MEMORY,
        ),
        (respond(503, "server busy, model is loading"), ErrorKind.MODEL_NOT_LOADED),
        (respond(400, "input exceeds the context window"), ErrorKind.CONTEXT_TOO_LONG),
        (respond(500, "something odd"), ErrorKind.GENERAL_ERROR),
    ],
)
def test_error_mapping(handler, kind):
    with pytest.raises(BackendError) as exc_info:
        collect(make_backend(handler))
    assert exc_info.value.kind is kind
    assert exc_info.value.service == "ollama"


def test_error_inside_stream_after_chunks():
    def handler(request):
        return httpx.Response(200, content=ndjson({"response": "partial"}, {"error": "CUDA error: out of memory"}))

    async def run():
        received = []
        with pytest.raises(BackendError) as exc_info:
            async for text in make_backend(handler).generate_stream(MESSAGES):
                received.append(text)
        return received, exc_info.value

    received, error = asyncio.run(run())
    assert received == ["partial"]
    assert error.kind is ErrorKind.OUT_OF_MEMORY


def test_model_not_found_suggests_pull():
    with pytest.raises(BackendError) as exc_info:
        collect(make_backend(respond(404, "model 'llama3.2' not found")))
    assert "ollama pull llama3.2" in exc_info.value.suggestion


def test_list_models_and_availability():
    def handler(request):
        assert request.url.path == "/api/tags"
        return httpx.Response(
            200,
            json={"models": [{"name": "llama3.2:latest", "size": 2019393189, "details": {"family": "llama"}}]},
        )

    backend = make_backend(handler)
    models = asyncio.run(backend.list_models())

    assert models[0]["name"] == "llama3.2:latest"
    assert models[0]["family"] == "llama"
    assert asyncio.run(backend.is_model_available()) is True
    assert asyncio.run(backend.is_model_available("mistral")) is False


def test_check_connection():
    assert asyncio.run(make_backend(lambda r: httpx.Response(200, json={"models": []})).check_connection()) is True
    assert asyncio.run(make_backend(raise_(httpx.ConnectError, "refused")).check_connection()) is False


def test_pull_and_delete_model():
    def handler(request):
        body = json.loads(request.content)
        if request.url.path == "/api/pull":
            return httpx.Response(200, json={"status": "success"})
        if request.url.path == "/api/delete" and body["name"] == "mistral":
            return httpx.Response(200)
        return httpx.Response(404, json={"error": "model not found"})

    backend = make_backend(handler)
    assert asyncio.run(backend.pull_model("mistral")) == {"model": "mistral", "status": "success"}
    assert asyncio.run(backend.delete_model("mistral")) is True
    assert asyncio.run(backend.delete_model("phi3")) is False


def test_benchmark_reports_throughput():
    def handler(request):
        return httpx.Response(
            200,
            content=ndjson(
                {"response": "A kanban board", "done": False},
                {"response": " shows work.", "done": True, "eval_count": 20, "eval_duration": 2_000_000_000},
            ),
        )

    result = asyncio.run(make_backend(handler).benchmark())

    assert result["model"] == "llama3.2"
    assert result["characters"] == len("A kanban board shows work.")
    assert result["tokens"] == 20
    assert result["tokens_per_second"] == 10.0
    assert result["first_token_seconds"] is not None


def test_validate_setup():
    def handler(request):
        return httpx.Response(200, json={"models": [{"name": "llama3.2:latest"}]})

    result = asyncio.run(make_backend(handler).validate_setup())
    assert result["connected"] is True
    assert result["model_available"] is True


@pytest.mark.parametrize("body", [b"<html>proxy error</html>", b'["not", "an", "object"]'])
def test_unreadable_bodies_become_backend_errors(body):
    backend = make_backend(lambda request: httpx.Response(200, content=body))

    calls = [
        lambda: backend.generate(MESSAGES),
        backend.list_models,
        lambda: backend.pull_model("mistral"),
    ]
    for call in calls:
        with pytest.raises(BackendError) as exc_info:
            asyncio.run(call())
        assert exc_info.value.kind is ErrorKind.GENERAL_ERROR
        assert exc_info.value.service == "ollama"


def test_non_object_stream_lines_are_skipped():
    def handler(request):
        return httpx.Response(200, content=b'[1, 2]\n"text"\n' + ndjson({"response": "ok", "done": True}))

    assert collect(make_backend(handler)) == ["ok"]
