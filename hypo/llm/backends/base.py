"""
Backend abstraction.

The orchestrator and gateway depend only on :class:`ChatBackend`. Concrete
adapters wrap one external service each and must raise
:class:`hypo.llm.errors.BackendError` (never an SDK exception) from every
public coroutine.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional

from hypo.core.logging_config import LoggerMixin

PromptMessages = List[Dict[str, str]]


@dataclass(frozen=True)
class GenerationOptions:
    """Per-call generation settings; ``model=None`` means the backend default."""
    model: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 1000


class ChatBackend(LoggerMixin, ABC):
    """A chat-completion service behind a uniform interface."""

    name: str = ""

    @property
    @abstractmethod
    def default_model(self) -> str:
        ...

    @property
    def is_configured(self) -> bool:
        """False when required credentials are missing."""
        return True

    def supports_model(self, model: str) -> bool:
        """Whether a bare model name (without 'backend:') belongs to this backend."""
        return False

    @abstractmethod
    async def generate(self, messages: PromptMessages, options: Optional[GenerationOptions] = None) -> str:
        """Full response text in one call."""
        ...

    @abstractmethod
    def generate_stream(
        self,
        messages: PromptMessages,
        options: Optional[GenerationOptions] = None,
    ) -> AsyncIterator[str]:
        """
        Async iterator of text chunks.

        Implementations are async generators; callers should close them
        (``contextlib.aclosing``) so the underlying HTTP stream is released on
        every exit path.
        """
        ...

    @abstractmethod
    async def check_connection(self) -> bool:
        """Cheap reachability probe for the health endpoint."""
        ...

    async def aclose(self) -> None:
        """Release network clients."""
        return None

    def describe(self) -> Dict[str, object]:
        return {
            "service": self.name,
            "default_model": self.default_model,
            "configured": self.is_configured,
        }
