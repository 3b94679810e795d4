"""
Shared adapter for OpenAI-compatible chat APIs.

OpenRouter, Groq and Perplexity Sonar all speak the chat-completions
protocol through an SDK with the same exception hierarchy shape
(``RateLimitError``, ``APITimeoutError``, ``APIConnectionError``,
``APIStatusError``, ``APIError``). This module holds the parts they share:

- request assembly
- error classification into :class:`ErrorKind`
- retry with exponential backoff on transient rate limits, applied only
  while opening the request, i.e. before the first chunk is emitted
- closing the SDK stream on every exit path

SDK clients are built lazily so an unconfigured backend never touches the
network or fails at startup; tests inject a stub client instead.
"""
import asyncio
import math
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Tuple

import httpx

from hypo.llm.backends.base import ChatBackend, GenerationOptions, PromptMessages
from hypo.llm.errors import BackendError, ErrorKind

CONTEXT_MARKERS: Tuple[str, ...] = (
    "context_length_exceeded",
    "maximum context length",
    "context length",
    "too many tokens",
)

MODEL_MARKERS: Tuple[str, ...] = (
    "model_not_found",
    "not a valid model",
    "invalid model",
    "model not found",
    "does not exist",
)


@dataclass(frozen=True)
class SdkErrors:
    """The exception classes of one SDK, most specific first."""
    rate_limit: type
    timeout: type
    connection: type
    status: type
    base: type


class OpenAICompatibleBackend(ChatBackend):
    """
    Base class for chat-completions backends.

    Subclasses provide ``name``, ``sdk_errors`` and ``_build_client``; they may
    override ``_extra_params`` to add provider-specific request fields and
    ``_is_quota_error`` to recognise a hard quota signal.

    Args:
        api_key: provider key; an empty key leaves the backend unconfigured
        model: default model id
        temperature: default sampling temperature
        max_tokens: default response limit
        max_retries: retries after the first attempt on a transient rate limit
        base_delay: first backoff delay in seconds, doubled per retry
        timeout: request timeout in seconds
        client: pre-built SDK client (tests)
        sleep: coroutine used for backoff (tests record delays with it)
    """

    sdk_errors: SdkErrors

    def __init__(
        self,
        api_key: str,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        max_retries: int = 3,
        base_delay: float = 2.0,
        timeout: float = 60.0,
        client: Any = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.api_key = api_key or ""
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.timeout = timeout
        self._client = client
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def _build_client(self) -> Any:
        raise NotImplementedError

    def _extra_params(self, model: str) -> Dict[str, Any]:
        return {}

    def _is_quota_error(self, exc: Exception, text: str) -> bool:
        return False

    def _quota_reset_hint(self, exc: Exception) -> Optional[int]:
        return None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def default_model(self) -> str:
        return self.model

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) or self._client is not None

    @property
    def client(self) -> Any:
        if self._client is None:
            if not self.api_key:
                raise BackendError(
                    ErrorKind.BACKEND_UNREACHABLE,
                    f"{self.name} is not configured.",
                    suggestion=f"Set the {self.name.upper()} API key in the environment.",
                    service=self.name,
                )
            self._client = self._build_client()
        return self._client

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _request_kwargs(
        self,
        messages: PromptMessages,
        options: Optional[GenerationOptions],
        stream: bool,
    ) -> Dict[str, Any]:
        options = options or GenerationOptions(temperature=self.temperature, max_tokens=self.max_tokens)
        model = options.model or self.default_model
        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
            "stream": stream,
        }
        kwargs.update(self._extra_params(model))
        return kwargs

    async def _create_with_retry(self, kwargs: Dict[str, Any]) -> Any:
        """Open the completion, retrying transient rate limits with backoff."""
        client = self.client
        attempt = 0
        while True:
            try:
                return await client.chat.completions.create(**kwargs)
            except Exception as exc:
                error = self._classify(exc, kwargs["model"])
                if error.retryable and attempt < self.max_retries:
                    delay = self.base_delay * (2 ** attempt)
                    attempt += 1
                    self.logger.warning(
                        f"{self.name} rate limited, retry {attempt}/{self.max_retries} in {delay:.0f}s"
                    )
                    await self._sleep(delay)
                    continue
                self.logger.error(f"{self.name} request failed: {error.kind.value}: {error.original_error}")
                raise error from exc

    async def generate(self, messages: PromptMessages, options: Optional[GenerationOptions] = None) -> str:
        kwargs = self._request_kwargs(messages, options, stream=False)
        response = await self._create_with_retry(kwargs)
        try:
            return response.choices[0].message.content or ""
        except (AttributeError, IndexError) as exc:
            raise BackendError(
                ErrorKind.GENERAL_ERROR,
                "The AI service returned a malformed response.",
                service=self.name,
                original_error=str(exc),
            ) from exc

    async def generate_stream(
        self,
        messages: PromptMessages,
        options: Optional[GenerationOptions] = None,
    ) -> AsyncIterator[str]:
        kwargs = self._request_kwargs(messages, options, stream=True)
        stream = await self._create_with_retry(kwargs)
        try:
            async for chunk in stream:
                text = self._chunk_text(chunk)
                if text:
                    yield text
        except BackendError:
            raise
        except Exception as exc:
            error = self._classify(exc, kwargs["model"])
            self.logger.error(f"{self.name} stream failed: {error.kind.value}: {error.original_error}")
            raise error from exc
        finally:
            await self._close_stream(stream)

    @staticmethod
    def _chunk_text(chunk: Any) -> str:
        choices = getattr(chunk, "choices", None)
        if not choices:
            return ""
        delta = getattr(choices[0], "delta", None)
        return getattr(delta, "content", None) or ""

    async def _close_stream(self, stream: Any) -> None:
        close = getattr(stream, "close", None)
        if close is None:
            return
        try:
            result = close()
            if asyncio.iscoroutine(result):
                await result
        except Exception as exc:
            self.logger.debug(f"{self.name} stream close failed: {exc}")

    # ------------------------------------------------------------------
    # Health and lifecycle
    # ------------------------------------------------------------------

    async def check_connection(self) -> bool:
        if not self.is_configured:
            return False
        try:
            await self.client.models.list()
            return True
        except Exception as exc:
            self.logger.warning(f"{self.name} connection check failed: {exc}")
            return False

    async def aclose(self) -> None:
        if self._client is not None and hasattr(self._client, "close"):
            await self._client.close()

    # ------------------------------------------------------------------
    # Error classification
    # ------------------------------------------------------------------

    @staticmethod
    def _error_text(exc: Exception) -> str:
        parts = [str(exc), str(getattr(exc, "message", "") or ""), str(getattr(exc, "body", "") or "")]
        return " ".join(parts).lower()

    def _error(self, kind: ErrorKind, exc: Exception, **kwargs: Any) -> BackendError:
        return BackendError(kind, service=self.name, original_error=str(exc), **kwargs)

    def _classify(self, exc: Exception, model: str) -> BackendError:
        """Map any exception raised by the SDK to a :class:`BackendError`."""
        if isinstance(exc, BackendError):
            return exc

        errors = self.sdk_errors
        text = self._error_text(exc)

        if isinstance(exc, errors.rate_limit):
            if self._is_quota_error(exc, text):
                return self._error(ErrorKind.QUOTA_EXCEEDED, exc, retry_after=self._quota_reset_hint(exc))
            return self._error(ErrorKind.RATE_LIMITED, exc, retry_after=self._retry_after_header(exc))

        # timeout is a subclass of connection in both SDKs
        if isinstance(exc, errors.timeout) or isinstance(exc, httpx.TimeoutException):
            return self._error(ErrorKind.TIMEOUT, exc)
        if isinstance(exc, errors.connection) or isinstance(exc, httpx.ConnectError):
            return self._error(ErrorKind.BACKEND_UNREACHABLE, exc)

        if isinstance(exc, errors.status):
            return self._classify_status(exc, getattr(exc, "status_code", 0), text, model)

        if isinstance(exc, (errors.base, httpx.HTTPError)):
            return self._error(ErrorKind.NETWORK_ERROR, exc)

        return self._error(ErrorKind.GENERAL_ERROR, exc)

    def _classify_status(self, exc: Exception, status: int, text: str, model: str) -> BackendError:
        if any(marker in text for marker in CONTEXT_MARKERS):
            return self._error(ErrorKind.CONTEXT_TOO_LONG, exc)
        if self._is_quota_error(exc, text):
            return self._error(ErrorKind.QUOTA_EXCEEDED, exc, retry_after=self._quota_reset_hint(exc))
        if status == 429:
            return self._error(ErrorKind.RATE_LIMITED, exc, retry_after=self._retry_after_header(exc))
        if status == 404 or (status == 400 and any(marker in text for marker in MODEL_MARKERS)):
            return self._error(
                ErrorKind.MODEL_NOT_FOUND,
                exc,
                message=f"Model '{model}' is not available on {self.name}.",
            )
        if status in (408, 504):
            return self._error(ErrorKind.TIMEOUT, exc)
        if status in (502, 503):
            return self._error(ErrorKind.BACKEND_UNREACHABLE, exc)
        return self._error(ErrorKind.GENERAL_ERROR, exc)

    @staticmethod
    def _header(exc: Exception, name: str) -> Optional[str]:
        response = getattr(exc, "response", None)
        headers = getattr(response, "headers", None)
        if headers is None:
            return None
        return headers.get(name)

    def _retry_after_header(self, exc: Exception) -> Optional[int]:
        value = self._header(exc, "retry-after")
        try:
            return max(0, math.ceil(float(value))) if value is not None else None
        except ValueError:
            return None

    def _reset_header_seconds(self, exc: Exception, name: str) -> Optional[int]:
        """Seconds until an epoch reset header (seconds or milliseconds)."""
        value = self._header(exc, name)
        if value is None:
            return None
        try:
            reset = float(value)
        except ValueError:
            return None
        if reset > 1e11:
            reset /= 1000.0
        return max(0, math.ceil(reset - time.time()))
