"""
Service wiring for the API.

All long-lived state (conversation store, cache, rate limiter, backends)
lives in one :class:`ServiceContainer` attached to ``app.state``. Routes
reach it through the FastAPI dependencies below, so tests can build an app
around a container with stub backends.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from hypo.cache.response_cache import ResponseCache
from hypo.context.builder import ContextBuilder
from hypo.core.audit import client_identity
from hypo.core.config import Settings, get_settings
from hypo.core.rate_limiter import RateLimiter
from hypo.llm.gateway import ProviderGateway, create_gateway
from hypo.memory.store import ConversationStore
from hypo.services.stream_orchestrator import StreamOrchestrator


@dataclass
class ServiceContainer:
    settings: Settings
    store: ConversationStore
    cache: ResponseCache
    rate_limiter: RateLimiter
    gateway: ProviderGateway
    orchestrator: StreamOrchestrator


def build_container(
    settings: Optional[Settings] = None,
    gateway: Optional[ProviderGateway] = None,
) -> ServiceContainer:
    """Create every service from settings; ``gateway`` overrides the real backends."""
    settings = settings or get_settings()
    store = ConversationStore(
        max_turns=settings.max_turns,
        idle_hours=settings.conversation_idle_hours,
    )
    cache = ResponseCache(
        max_size=settings.cache_max_size,
        default_ttl=settings.cache_ttl_seconds,
    )
    rate_limiter = RateLimiter(
        cooldown_seconds=settings.rate_limit_cooldown_seconds,
        requests_per_minute=settings.rate_limit_per_minute,
    )
    gateway = gateway or create_gateway(settings)
    orchestrator = StreamOrchestrator(
        store=store,
        context_builder=ContextBuilder(store),
        cache=cache,
        gateway=gateway,
        rate_limiter=rate_limiter,
        fuzzy_fallback=settings.cache_fuzzy_fallback,
        similarity_threshold=settings.cache_similarity_threshold,
        include_original_error=settings.is_development(),
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
    )
    return ServiceContainer(
        settings=settings,
        store=store,
        cache=cache,
        rate_limiter=rate_limiter,
        gateway=gateway,
        orchestrator=orchestrator,
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_orchestrator(request: Request) -> StreamOrchestrator:
    return get_container(request).orchestrator


def get_gateway(request: Request) -> ProviderGateway:
    return get_container(request).gateway


def get_client_id(request: Request) -> str:
    """Rate-limit identity of the caller."""
    return client_identity(request)
