"""
Provider Gateway - one entry point over all configured backends.

Resolves a caller's model hint to a concrete (backend, model) pair:

    "auto"              -> first configured backend in the priority order
    "<backend>"         -> that backend with its default model
    "<backend>:<model>" -> that backend with an explicit model
    "<sonar variant>"   -> Sonar with that variant

There is no cross-backend fallback: a turn that fails on the resolved
backend fails with that backend's error.
"""
import asyncio
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from hypo.core.config import Settings
from hypo.core.exceptions import InvalidArgument
from hypo.core.logging_config import LoggerMixin
from hypo.core.validators import validate_model_hint
from hypo.llm.backends import (
    ChatBackend,
    GroqBackend,
    OllamaBackend,
    OpenRouterBackend,
    SonarBackend,
)
from hypo.llm.errors import BackendError, ErrorKind

AUTO = "auto"


@dataclass(frozen=True)
class Resolution:
    backend: ChatBackend
    model: str

    @property
    def service(self) -> str:
        return self.backend.name


class ProviderGateway(LoggerMixin):
    """
    Registry of backends plus hint resolution and health.

    Args:
        backends: adapters, keyed by their ``name``
        priority: backend names tried in order for the "auto" hint
    """

    def __init__(self, backends: Iterable[ChatBackend], priority: Optional[Sequence[str]] = None):
        self.backends: Dict[str, ChatBackend] = {backend.name: backend for backend in backends}
        self.priority: List[str] = [name for name in (priority or self.backends.keys()) if name in self.backends]
        self.logger.info(f"Gateway backends: {list(self.backends)} (auto order: {self.priority})")

    @property
    def names(self) -> List[str]:
        return list(self.backends)

    def get(self, name: str) -> ChatBackend:
        try:
            return self.backends[name]
        except KeyError:
            raise InvalidArgument(f"Unknown backend: {name}", details=f"available={', '.join(self.names)}")

    def find(self, name: str) -> Optional[ChatBackend]:
        return self.backends.get(name)

    def validate_hint(self, model_hint: Optional[str]) -> None:
        """Raise InvalidArgument for a hint no backend can serve."""
        hint = (model_hint or AUTO).strip()
        ok, error = validate_model_hint(hint, self.names)
        if not ok:
            raise InvalidArgument(error)
        if hint.lower() == AUTO:
            return
        self._resolve_named(hint)

    def resolve(self, model_hint: Optional[str] = AUTO) -> Resolution:
        """
        Map a model hint to a backend and model.

        Raises:
            InvalidArgument: the hint names no known backend or model
            BackendError: "auto" was requested but no backend is configured
        """
        hint = (model_hint or AUTO).strip()
        if hint.lower() == AUTO:
            for name in self.priority:
                backend = self.backends[name]
                if backend.is_configured:
                    return Resolution(backend, backend.default_model)
            raise BackendError(
                ErrorKind.BACKEND_UNREACHABLE,
                "No AI service is configured.",
                suggestion="Set OPENROUTER_API_KEY, GROQ_API_KEY, PERPLEXITY_API_KEY or OLLAMA_URL.",
            )
        return self._resolve_named(hint)

    def _resolve_named(self, hint: str) -> Resolution:
        lowered = hint.lower()
        if lowered in self.backends:
            backend = self.backends[lowered]
            return Resolution(backend, backend.default_model)

        prefix, sep, model = hint.partition(":")
        if sep and prefix.lower() in self.backends and model:
            return Resolution(self.backends[prefix.lower()], model)

        for backend in self.backends.values():
            if backend.supports_model(lowered):
                return Resolution(backend, lowered)

        raise InvalidArgument(f"Unknown model: {hint}", details=f"available={', '.join(self.names + [AUTO])}")

    async def health(self) -> List[Dict[str, str]]:
        """Connection state of every backend, probed concurrently."""
        backends = list(self.backends.values())
        results = await asyncio.gather(
            *(self._probe(backend) for backend in backends),
        )
        return [
            {"service": backend.name, "connection": state, "model": backend.default_model}
            for backend, state in zip(backends, results)
        ]

    async def _probe(self, backend: ChatBackend) -> str:
        if not backend.is_configured:
            return "not_configured"
        try:
            return "connected" if await backend.check_connection() else "disconnected"
        except Exception as exc:
            self.logger.warning(f"Health probe for {backend.name} failed: {exc}")
            return "disconnected"

    async def aclose(self) -> None:
        for backend in self.backends.values():
            try:
                await backend.aclose()
            except Exception as exc:
                self.logger.warning(f"Closing {backend.name} failed: {exc}")


def create_gateway(settings: Settings) -> ProviderGateway:
    """Build every backend from settings. Backends without credentials stay registered but unconfigured."""
    common = {
        "temperature": settings.llm_temperature,
        "max_tokens": settings.llm_max_tokens,
    }
    retry = {
        "max_retries": settings.retry_max_attempts,
        "base_delay": settings.retry_base_delay_seconds,
    }
    backends: List[ChatBackend] = [
        OpenRouterBackend(
            settings.openrouter_api_key,
            settings.openrouter_model,
            base_url=settings.openrouter_base_url,
            app_name=settings.app_name,
            **common,
            **retry,
        ),
        GroqBackend(settings.groq_api_key, settings.groq_model, **common, **retry),
        SonarBackend(settings.perplexity_api_key, settings.perplexity_model, **common, **retry),
        OllamaBackend(
            base_url=settings.ollama_url,
            model=settings.ollama_model,
            timeout=settings.ollama_timeout_seconds,
            use_chat_api=settings.ollama_chat_api,
            **common,
        ),
    ]
    return ProviderGateway(backends, priority=settings.auto_backend_order)
