from __future__ import annotations

import asyncio

from hypo.core.config import DEFAULT_BACKEND_ORDER, get_settings
from hypo.core.exceptions import RateLimitExceeded
from hypo.core.scheduler import PeriodicTask
from hypo.core.validators import sanitize_message, validate_conversation_id, validate_model_hint
from hypo.models.events import ChunkEvent, DoneEvent, ErrorEvent


def test_settings_defaults(clean_env):
    settings = get_settings()

    assert settings.auto_backend_order == DEFAULT_BACKEND_ORDER
    assert settings.max_turns == 20
    assert settings.cache_max_size == 100
    assert settings.cache_ttl_seconds == 300
    assert settings.rate_limit_cooldown_seconds == 3
    assert settings.retry_max_attempts == 3
    assert settings.openrouter_api_key == ""


def test_settings_from_environment(clean_env, monkeypatch):
    monkeypatch.setenv("AUTO_BACKEND_ORDER", " Ollama, sonar ,")
    monkeypatch.setenv("CACHE_FUZZY_FALLBACK", "yes")
    monkeypatch.setenv("APP_ENV", "production")

    settings = get_settings()

    assert settings.auto_backend_order == ("ollama", "sonar")
    assert settings.cache_fuzzy_fallback is True
    assert settings.is_production()
    assert not settings.is_development()


def test_sanitize_message_keeps_newlines():
    assert sanitize_message("  line one\r\n\r\n\r\nline \t  two \x00 ") == "line one\n\nline two"


def test_validate_conversation_id():
    assert validate_conversation_id(None) == (True, None)
    assert validate_conversation_id("conv_1718000000000_k3j9x2a1b")[0] is True
    assert validate_conversation_id("")[0] is False
    assert validate_conversation_id("has space")[0] is False
    assert validate_conversation_id("x" * 129)[0] is False


def test_validate_model_hint():
    assert validate_model_hint("auto", ["ollama"]) == (True, None)
    assert validate_model_hint("ollama:", ["ollama"])[0] is False
    assert validate_model_hint("", ["ollama"])[0] is False


def test_rate_limit_exception_body():
    exc = RateLimitExceeded(1)
    assert exc.status_code == 429
    assert exc.to_dict() == {
        "error": "Too many requests",
        "message": "Please wait 1 second before sending another message.",
        "waitTime": 1,
    }


def test_sse_encoding():
    assert ChunkEvent("Xin chào").to_sse() == 'data: {"type":"chunk","content":"Xin chào"}\n\n'

    done = DoneEvent(full_text="Hi", service="fake", from_cache=False).to_payload()
    assert done == {"type": "done", "fullText": "Hi", "service": "fake", "fromCache": False}

    error = ErrorEvent(error_type="timeout", message="Too slow").to_payload()
    assert error == {"type": "error", "errorType": "timeout", "message": "Too slow"}


def test_periodic_task_runs_until_stopped():
    calls = []

    async def scenario():
        task = PeriodicTask("test", lambda: calls.append(1), interval_seconds=0.01)
        task.start()
        assert task.running
        await asyncio.sleep(0.05)
        await task.stop()
        assert not task.running
        count = len(calls)
        await asyncio.sleep(0.03)
        return count

    count = asyncio.run(scenario())
    assert count >= 1
    assert len(calls) == count


def test_periodic_task_survives_failing_job():
    calls = []

    def job():
        calls.append(1)
        raise RuntimeError("sweep failed")

    async def scenario():
        task = PeriodicTask("failing", job, interval_seconds=0.01)
        task.start()
        await asyncio.sleep(0.05)
        await task.stop()

    asyncio.run(scenario())
    assert len(calls) >= 2


def test_event_type_tags():
    assert ChunkEvent("x").type == "chunk"
    assert DoneEvent(full_text="x").to_payload()["type"] == DoneEvent.type == "done"
    assert ErrorEvent(error_type="timeout", message="m").type == "error"
