"""
Stream Orchestrator - one chat turn from request to terminal event.

This service orchestrates the turn flow:
1. Cooldown check (reject immediately with a wait hint)
2. Append the user message
3. Build the prompt context
4. Cache lookup on the trimmed context + model hint
5. On a miss, resolve the hint and relay backend chunks
6. On success, append the assistant message and write the cache
7. On failure, emit exactly one error event

Steps 1-3 run in :meth:`StreamOrchestrator.start` so a rejected request can
be answered with a plain HTTP 429 before any stream is opened. Steps 4-7 run
in :meth:`StreamOrchestrator.stream`, an async generator of events.

Retries of transient rate limits happen inside the backend adapter, before
its first chunk, so the orchestrator only ever sees a terminal failure.

Persistence is at-most-once: the assistant message and the cache entry are
written only after the backend stream completed. A client disconnect
closes the generator, which closes the backend stream through
``contextlib.aclosing`` and skips the commit.
"""
import secrets
import string
import time
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

from hypo.cache.response_cache import CacheHit, ResponseCache
from hypo.context.builder import ContextBuilder
from hypo.core.exceptions import (
    BackendUnavailable,
    ConversationNotFound,
    RateLimitExceeded,
    ValidationError,
)
from hypo.core.logging_config import get_logger
from hypo.core.rate_limiter import RateLimiter
from hypo.core.validators import validate_conversation_id, validate_message
from hypo.llm.backends.base import GenerationOptions, PromptMessages
from hypo.llm.errors import HTTP_STATUS, BackendError, ErrorKind
from hypo.llm.gateway import AUTO, ProviderGateway
from hypo.memory.conversation import Message
from hypo.memory.store import ConversationStore
from hypo.models.events import ChunkEvent, DoneEvent, ErrorEvent, StreamEvent

logger = get_logger(__name__)

CACHE_SERVICE = "cache"
EMPTY_RESPONSE_MESSAGE = "The AI service returned an empty response."
_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_conversation_id() -> str:
    """``conv_<epoch ms>_<9 random chars>``"""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"conv_{int(time.time() * 1000)}_{suffix}"


class TurnState(str, Enum):
    """
    Phases of a turn.

    ``RETRYABLE_ERROR`` and the way back to ``PROVIDER_CALL`` belong to the
    backend adapter, which retries transient rate limits before its first
    chunk. A turn driven by this module therefore never records them; it
    sees either a stream or one terminal ``BackendError``.
    """
    IDLE = "idle"
    COOLDOWN_CHECK = "cooldown_check"
    REJECTED = "rejected"
    CONTEXT_BUILD = "context_build"
    CACHE_LOOKUP = "cache_lookup"
    CACHE_HIT = "cache_hit"
    EMIT_CACHED = "emit_cached"
    CACHE_MISS = "cache_miss"
    PROVIDER_CALL = "provider_call"
    STREAMING = "streaming"
    RETRYABLE_ERROR = "retryable_error"
    TERMINAL_ERROR = "terminal_error"
    DONE = "done"


TRANSITIONS = {
    TurnState.IDLE: {TurnState.COOLDOWN_CHECK},
    TurnState.COOLDOWN_CHECK: {TurnState.REJECTED, TurnState.CONTEXT_BUILD},
    TurnState.CONTEXT_BUILD: {TurnState.CACHE_LOOKUP},
    TurnState.CACHE_LOOKUP: {TurnState.CACHE_HIT, TurnState.CACHE_MISS},
    TurnState.CACHE_HIT: {TurnState.EMIT_CACHED},
    TurnState.EMIT_CACHED: {TurnState.DONE},
    TurnState.CACHE_MISS: {TurnState.PROVIDER_CALL},
    TurnState.PROVIDER_CALL: {TurnState.STREAMING, TurnState.RETRYABLE_ERROR, TurnState.TERMINAL_ERROR},
    TurnState.RETRYABLE_ERROR: {TurnState.PROVIDER_CALL},
    TurnState.STREAMING: {TurnState.DONE, TurnState.TERMINAL_ERROR},
    TurnState.TERMINAL_ERROR: {TurnState.DONE},
    TurnState.REJECTED: set(),
    TurnState.DONE: set(),
}


@dataclass
class Turn:
    """State of one request/response cycle."""
    conversation_id: str
    message: str
    model_hint: str = AUTO
    client_id: str = "anonymous"
    state: TurnState = TurnState.IDLE
    history: List[TurnState] = field(default_factory=list)
    context: PromptMessages = field(default_factory=list)
    prompt: PromptMessages = field(default_factory=list)
    started_at: float = field(default_factory=time.perf_counter)
    service: Optional[str] = None
    model_used: Optional[str] = None
    committed: bool = False

    def __post_init__(self) -> None:
        self.history.append(self.state)

    def transition(self, state: TurnState) -> None:
        if state not in TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal turn transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    @property
    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started_at) * 1000)


@dataclass(frozen=True)
class CompletionResult:
    """Outcome of a drained turn, for the JSON endpoint."""
    response: str
    conversation_id: str
    model_used: Optional[str]
    service: Optional[str]
    processing_time: int
    from_cache: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response": self.response,
            "conversationId": self.conversation_id,
            "modelUsed": self.model_used,
            "service": self.service,
            "processingTime": self.processing_time,
            "fromCache": self.from_cache,
        }


class StreamOrchestrator:
    """
    Drives chat turns through rate limiting, context, cache and backends.

    Example:
        >>> turn = orchestrator.start("conv_1", "Hello", client_id="10.0.0.1")
        >>> async for event in orchestrator.stream(turn):
        ...     print(event.to_sse(), end="")
    """

    def __init__(
        self,
        store: ConversationStore,
        context_builder: ContextBuilder,
        cache: ResponseCache,
        gateway: ProviderGateway,
        rate_limiter: RateLimiter,
        fuzzy_fallback: bool = False,
        similarity_threshold: float = 0.7,
        include_original_error: bool = False,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ):
        self.store = store
        self.context_builder = context_builder
        self.cache = cache
        self.gateway = gateway
        self.rate_limiter = rate_limiter
        self.fuzzy_fallback = fuzzy_fallback
        self.similarity_threshold = similarity_threshold
        self.include_original_error = include_original_error
        self.temperature = temperature
        self.max_tokens = max_tokens
        logger.info(
            f"StreamOrchestrator initialized (fuzzy_fallback={fuzzy_fallback}, "
            f"dev_errors={include_original_error})"
        )

    # ------------------------------------------------------------------
    # Turn lifecycle
    # ------------------------------------------------------------------

    def start(
        self,
        conversation_id: Optional[str],
        message: str,
        model: Optional[str] = AUTO,
        client_id: str = "anonymous",
    ) -> Turn:
        """
        Validate, rate-limit and record the user message.

        Raises:
            ValidationError: bad message or conversation id
            InvalidArgument: unknown model hint
            RateLimitExceeded: client in cooldown or over budget
        """
        ok, error = validate_conversation_id(conversation_id)
        if not ok:
            raise ValidationError(error, field="conversationId")
        ok, sanitized, error = validate_message(message)
        if not ok:
            raise ValidationError(error, field="message")

        model_hint = (model or AUTO).strip() or AUTO
        self.gateway.validate_hint(model_hint)

        turn = Turn(
            conversation_id=conversation_id or new_conversation_id(),
            message=sanitized,
            model_hint=model_hint,
            client_id=client_id,
        )

        turn.transition(TurnState.COOLDOWN_CHECK)
        decision = self.rate_limiter.check(client_id)
        if not decision.allowed:
            turn.transition(TurnState.REJECTED)
            if decision.reason == RateLimiter.BUDGET:
                raise RateLimitExceeded(
                    decision.wait_time,
                    message=f"Too many messages this minute. Please wait {decision.wait_time} seconds.",
                )
            raise RateLimitExceeded(decision.wait_time)

        turn.transition(TurnState.CONTEXT_BUILD)
        self.store.add_user_message(turn.conversation_id, turn.message)
        turn.context = self.store.to_prompt_context(turn.conversation_id)
        turn.prompt = self.context_builder.build_messages(turn.conversation_id)

        logger.info(
            f"Turn started: conversation={turn.conversation_id}, model={model_hint}, "
            f"message_length={len(turn.message)}, context_size={len(turn.context)}"
        )
        return turn

    async def stream(self, turn: Turn) -> AsyncIterator[StreamEvent]:
        """
        Events for a started turn: chunks, then one ``done`` or ``error``.

        Backend failures never escape as exceptions; they become the error
        event. Cancellation (client disconnect) is not caught.
        """
        turn.transition(TurnState.CACHE_LOOKUP)
        hit = self._lookup_cache(turn)

        if hit is not None:
            turn.transition(TurnState.CACHE_HIT)
            turn.transition(TurnState.EMIT_CACHED)
            turn.service = CACHE_SERVICE
            turn.model_used = hit.model
            yield ChunkEvent(hit.response)
            self._commit(turn, hit.response, write_cache=False)
            turn.transition(TurnState.DONE)
            yield self._done_event(turn, hit.response, from_cache=True)
            return

        turn.transition(TurnState.CACHE_MISS)
        turn.transition(TurnState.PROVIDER_CALL)

        parts: List[str] = []
        try:
            resolution = self.gateway.resolve(turn.model_hint)
            turn.service = resolution.service
            turn.model_used = resolution.model
            options = GenerationOptions(
                model=resolution.model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
            chunks = resolution.backend.generate_stream(turn.prompt, options)
            async with aclosing(chunks):
                async for text in chunks:
                    if turn.state is TurnState.PROVIDER_CALL:
                        turn.transition(TurnState.STREAMING)
                    parts.append(text)
                    yield ChunkEvent(text)
        except BackendError as exc:
            yield self._fail(turn, exc)
            return
        except Exception as exc:
            logger.exception(f"Unexpected error in turn {turn.conversation_id}: {exc}")
            yield self._fail(turn, BackendError(ErrorKind.GENERAL_ERROR, service=turn.service, original_error=str(exc)))
            return

        full_text = "".join(parts)
        if not full_text.strip():
            yield self._fail(
                turn,
                BackendError(ErrorKind.GENERAL_ERROR, EMPTY_RESPONSE_MESSAGE, service=turn.service),
            )
            return

        self._commit(turn, full_text, write_cache=True)
        turn.transition(TurnState.DONE)
        yield self._done_event(turn, full_text, from_cache=False)

    async def complete(self, turn: Turn) -> CompletionResult:
        """
        Drain a turn for the non-streaming endpoint.

        Raises:
            BackendUnavailable: the turn ended with an error event
        """
        result: Optional[CompletionResult] = None
        async for event in self.stream(turn):
            if isinstance(event, ErrorEvent):
                raise BackendUnavailable(
                    event.error_type,
                    event.message,
                    suggestion=event.suggestion,
                    status_code=HTTP_STATUS.get(ErrorKind(event.error_type), 503),
                )
            if isinstance(event, DoneEvent):
                result = CompletionResult(
                    response=event.full_text,
                    conversation_id=turn.conversation_id,
                    model_used=event.model_used,
                    service=event.service,
                    processing_time=event.processing_time or 0,
                    from_cache=bool(event.from_cache),
                )
        if result is None:
            raise RuntimeError(f"Turn {turn.conversation_id} ended without a terminal event")
        return result

    # ------------------------------------------------------------------
    # Conversation management
    # ------------------------------------------------------------------

    def delete_conversation(self, conversation_id: str) -> Dict[str, Any]:
        """Remove a conversation and the cache entries it wrote."""
        deleted = self.store.delete(conversation_id)
        removed = self.cache.invalidate_conversation(conversation_id)
        logger.info(f"Conversation {conversation_id} deleted={deleted}, cache entries removed={removed}")
        return {"conversationId": conversation_id, "deleted": deleted, "cacheEntriesRemoved": removed}

    def conversation_history(self, conversation_id: str, limit: int = 20) -> Dict[str, Any]:
        """
        Paged history with summary and context analysis.

        Raises:
            ConversationNotFound: unknown id
        """
        history = self.store.history(conversation_id, limit=limit)
        if history is None:
            raise ConversationNotFound(conversation_id)
        return {
            "conversationId": conversation_id,
            "messages": history["messages"],
            "totalMessages": history["total_messages"],
            "hasMore": history["has_more"],
            "summary": self.store.summarize(conversation_id) or {},
            "context": self.context_builder.build_context_summary(conversation_id),
        }

    def stats(self) -> Dict[str, Any]:
        return {
            "cache": self.cache.stats(),
            "conversations": self.store.get_stats(),
            "rateLimit": self.rate_limiter.get_stats(),
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lookup_cache(self, turn: Turn) -> Optional[CacheHit]:
        hit = self.cache.get(turn.context, turn.model_hint)
        if hit is None and self.fuzzy_fallback:
            hit = self.cache.find_similar(turn.context, self.similarity_threshold, model=turn.model_hint)
        return hit

    def _commit(self, turn: Turn, text: str, write_cache: bool) -> None:
        reply = Message(sender="assistant", text=text)
        if not self.store.append_existing(turn.conversation_id, reply):
            logger.warning(f"Conversation {turn.conversation_id} was deleted mid-turn; reply not stored")
            return
        if write_cache:
            self.cache.set(
                turn.context,
                text,
                model=turn.model_hint,
                conversation_id=turn.conversation_id,
                model_used=turn.model_used,
            )
            if not self.store.exists(turn.conversation_id):
                self.cache.invalidate_conversation(turn.conversation_id)
                return
        turn.committed = True
        logger.info(
            f"Turn completed: conversation={turn.conversation_id}, service={turn.service}, "
            f"model={turn.model_used}, response_length={len(text)}, time={turn.elapsed_ms}ms"
        )

    def _done_event(self, turn: Turn, text: str, from_cache: bool) -> DoneEvent:
        return DoneEvent(
            full_text=text,
            model_used=turn.model_used,
            processing_time=turn.elapsed_ms,
            service=turn.service,
            from_cache=from_cache,
            conversation_id=turn.conversation_id,
        )

    def _fail(self, turn: Turn, error: BackendError) -> ErrorEvent:
        turn.transition(TurnState.TERMINAL_ERROR)
        turn.transition(TurnState.DONE)
        logger.error(
            f"Turn failed: conversation={turn.conversation_id}, service={error.service or turn.service}, "
            f"kind={error.kind.value}, error={error.original_error or error.message}"
        )
        return ErrorEvent(
            error_type=error.kind.value,
            message=error.message,
            original_error=error.original_error if self.include_original_error else None,
            suggestion=error.suggestion,
            conversation_id=turn.conversation_id,
            service=error.service or turn.service,
        )
