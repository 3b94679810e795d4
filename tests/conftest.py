"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import List, Optional, Sequence

import pytest

from hypo.cache.response_cache import ResponseCache
from hypo.context.builder import ContextBuilder
from hypo.core.config import Settings, get_settings
from hypo.core.rate_limiter import RateLimiter
from hypo.llm.backends.base import ChatBackend, GenerationOptions
from hypo.llm.gateway import ProviderGateway
from hypo.memory.store import ConversationStore
from hypo.services.stream_orchestrator import StreamOrchestrator

BACKEND_ENV = [
    "OPENROUTER_API_KEY",
    "GROQ_API_KEY",
    "PERPLEXITY_API_KEY",
    "AUTO_BACKEND_ORDER",
    "APP_ENV",
    "ENABLE_AUDIT_LOGGING",
]


class FakeBackend(ChatBackend):
    """Scripted backend: yields ``chunks`` and optionally raises ``error`` at ``error_at``."""

    def __init__(
        self,
        name: str = "fake",
        chunks: Sequence[str] = ("Hello", " from", " the fake backend"),
        error: Optional[Exception] = None,
        error_at: int = 0,
        configured: bool = True,
        connected: bool = True,
        model: str = "fake-model",
    ):
        self.name = name
        self.chunks = list(chunks)
        self.error = error
        self.error_at = error_at
        self.configured = configured
        self.connected = connected
        self.model = model
        self.calls: List[tuple] = []
        self.streams_opened = 0
        self.streams_closed = 0
        self.closed = False

    @property
    def default_model(self) -> str:
        return self.model

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def generate(self, messages, options: Optional[GenerationOptions] = None) -> str:
        self.calls.append((messages, options))
        if self.error is not None:
            raise self.error
        return "".join(self.chunks)

    async def generate_stream(self, messages, options: Optional[GenerationOptions] = None):
        self.calls.append((messages, options))
        self.streams_opened += 1
        try:
            for index, chunk in enumerate(self.chunks):
                if self.error is not None and index == self.error_at:
                    raise self.error
                await asyncio.sleep(0)
                yield chunk
            if self.error is not None and self.error_at >= len(self.chunks):
                raise self.error
        finally:
            self.streams_closed += 1

    async def check_connection(self) -> bool:
        return self.connected

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Settings built from defaults only, no real credentials."""
    for var in BACKEND_ENV:
        monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings(clean_env) -> Settings:
    return replace(
        get_settings(),
        app_env="testing",
        rate_limit_cooldown_seconds=0,
        enable_audit_logging=False,
    )


@pytest.fixture
def backend_factory():
    """Build FakeBackend instances with custom scripts."""
    return FakeBackend


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def gateway(fake_backend: FakeBackend) -> ProviderGateway:
    return ProviderGateway([fake_backend], priority=["fake"])


@pytest.fixture
def store() -> ConversationStore:
    return ConversationStore(max_turns=20)


@pytest.fixture
def cache() -> ResponseCache:
    return ResponseCache(max_size=100, default_ttl=300)


@pytest.fixture
def orchestrator(store, cache, gateway) -> StreamOrchestrator:
    return StreamOrchestrator(
        store=store,
        context_builder=ContextBuilder(store),
        cache=cache,
        gateway=gateway,
        rate_limiter=RateLimiter(cooldown_seconds=0, requests_per_minute=1000),
        include_original_error=True,
    )


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
