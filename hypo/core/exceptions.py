"""
Custom Exceptions - HTTP-facing error classes.

Each exception carries a status code and a machine-readable error code and is
rendered by the handlers registered in ``hypo.api.main``.

Backend failures do NOT use this hierarchy: adapters raise
:class:`hypo.llm.errors.BackendError`, which the orchestrator turns into a
stream ``error`` event. Only the JSON endpoint wraps it in
:class:`BackendUnavailable`.
"""
from typing import Any, Dict, Optional


class HypoException(Exception):
    """
    Base exception for all API-level errors.

    Subclass this for specific error types.
    """
    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        """Convert to error response dict."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class InvalidArgument(HypoException):
    """Raised when a caller passes an unusable argument (e.g. empty id)."""
    status_code = 400
    error_code = "invalid_argument"


class ValidationError(InvalidArgument):
    """Raised when request input validation fails."""
    error_code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, details=f"field={field}" if field else None)
        self.field = field


class RateLimitExceeded(HypoException):
    """
    Raised when a client is inside its cooldown window or over its
    per-minute budget.

    The body follows the shape the chat widget expects:
    ``{"error": "Too many requests", "message": ..., "waitTime": <seconds>}``.
    """
    status_code = 429

    def __init__(self, wait_time: int, error: str = "Too many requests", message: Optional[str] = None):
        unit = "second" if wait_time == 1 else "seconds"
        super().__init__(
            message or f"Please wait {wait_time} {unit} before sending another message.",
            details=f"wait_time={wait_time}",
        )
        self.error_code = error
        self.wait_time = wait_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "waitTime": self.wait_time,
        }


class ConversationNotFound(HypoException):
    """Raised when a conversation id is unknown (or already swept)."""
    status_code = 404
    error_code = "conversation_not_found"

    def __init__(self, conversation_id: str):
        super().__init__(
            message=f"Conversation not found: {conversation_id}",
            details=f"conversation_id={conversation_id}",
        )
        self.conversation_id = conversation_id


class BackendUnavailable(HypoException):
    """
    Raised by the non-streaming endpoint when generation ended in a terminal
    backend error. ``error_type`` is the taxonomy kind.
    """
    status_code = 503
    error_code = "backend_error"

    def __init__(
        self,
        error_type: str,
        message: str,
        suggestion: Optional[str] = None,
        status_code: int = 503,
    ):
        super().__init__(message, details=suggestion)
        self.error_type = error_type
        self.suggestion = suggestion
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_code,
            "errorType": self.error_type,
            "message": self.message,
            "suggestion": self.suggestion,
        }
