"""
Backend error taxonomy.

Every adapter translates its own failures (SDK exceptions, HTTP statuses,
error strings in a response body) into one :class:`BackendError` carrying an
:class:`ErrorKind`. Nothing outside ``hypo.llm`` inspects backend exception
types or messages; the orchestrator switches on ``kind`` only.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Closed set of failure kinds. Values are the wire ``errorType``."""
    RATE_LIMITED = "rate_limited"
    QUOTA_EXCEEDED = "quota_exceeded"
    BACKEND_UNREACHABLE = "backend_unreachable"
    MODEL_NOT_FOUND = "model_not_found"
    MODEL_NOT_LOADED = "model_not_loaded"
    TIMEOUT = "timeout"
    OUT_OF_MEMORY = "out_of_memory"
    CONTEXT_TOO_LONG = "context_too_long"
    NETWORK_ERROR = "network_error"
    GENERAL_ERROR = "general_error"


# Only transient rate limiting is retried, and only by the adapter
RETRYABLE_KINDS = frozenset({ErrorKind.RATE_LIMITED})

DEFAULT_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.RATE_LIMITED: "The AI service is receiving too many requests right now.",
    ErrorKind.QUOTA_EXCEEDED: "The AI service quota for this period has been used up.",
    ErrorKind.BACKEND_UNREACHABLE: "Could not connect to the AI service.",
    ErrorKind.MODEL_NOT_FOUND: "The requested model does not exist on this service.",
    ErrorKind.MODEL_NOT_LOADED: "The model is still loading.",
    ErrorKind.TIMEOUT: "The AI service did not respond in time.",
    ErrorKind.OUT_OF_MEMORY: "The AI service ran out of memory while generating.",
    ErrorKind.CONTEXT_TOO_LONG: "This conversation is too long for the model.",
    ErrorKind.NETWORK_ERROR: "A network error interrupted the request.",
    ErrorKind.GENERAL_ERROR: "Something went wrong. Please try again.",
}

SUGGESTIONS: Dict[ErrorKind, str] = {
    ErrorKind.RATE_LIMITED: "Wait a few seconds and send the message again.",
    ErrorKind.QUOTA_EXCEEDED: "Try again after the quota resets or pick another model.",
    ErrorKind.BACKEND_UNREACHABLE: "Check that the service is running and reachable.",
    ErrorKind.MODEL_NOT_FOUND: "Pick another model or install it on the local runtime.",
    ErrorKind.MODEL_NOT_LOADED: "Wait for the model to finish loading (usually 30-60 seconds).",
    ErrorKind.TIMEOUT: "Try again, or use a smaller model.",
    ErrorKind.OUT_OF_MEMORY: "Use a smaller model.",
    ErrorKind.CONTEXT_TOO_LONG: "Start a new conversation.",
    ErrorKind.NETWORK_ERROR: "Check the network connection and try again.",
    ErrorKind.GENERAL_ERROR: "Check the server logs for details.",
}

# Status used when a backend error has to be answered as a plain HTTP response
HTTP_STATUS: Dict[ErrorKind, int] = {
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.QUOTA_EXCEEDED: 429,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.MODEL_NOT_FOUND: 404,
    ErrorKind.CONTEXT_TOO_LONG: 413,
}


class BackendError(Exception):
    """
    A backend failure, already classified.

    Attributes:
        kind: taxonomy kind
        message: user-facing message
        suggestion: remediation hint
        service: backend name that failed
        original_error: raw error text, for logs and development responses
        retry_after: seconds until a retry can succeed, when the backend said so
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: Optional[str] = None,
        *,
        suggestion: Optional[str] = None,
        service: Optional[str] = None,
        original_error: Optional[str] = None,
        retry_after: Optional[int] = None,
    ):
        self.kind = ErrorKind(kind)
        self.message = message or DEFAULT_MESSAGES[self.kind]
        self.suggestion = suggestion or SUGGESTIONS[self.kind]
        self.service = service
        self.original_error = original_error
        self.retry_after = retry_after
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    @property
    def http_status(self) -> int:
        return HTTP_STATUS.get(self.kind, 503)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "errorType": self.kind.value,
            "message": self.message,
            "suggestion": self.suggestion,
            "service": self.service,
            "retryAfter": self.retry_after,
        }

    def __repr__(self) -> str:
        return f"BackendError(kind={self.kind.value!r}, service={self.service!r}, message={self.message!r})"
