"""
Input Validators - Sanitization and validation utilities.

This module provides request-level validation:
- Message sanitization
- Conversation ID validation
- Model hint validation
"""
import re
from typing import Iterable, Optional, Tuple

from hypo.core.logging_config import get_logger

logger = get_logger(__name__)

MAX_MESSAGE_LENGTH = 4000
MAX_CONVERSATION_ID_LENGTH = 128

# Caller-minted ids look like conv_1718000000000_k3j9x2a1b but any
# url-safe token is accepted
_CONVERSATION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.:\-]+$")

# Horizontal whitespace only: newlines are meaningful in chat messages
_HORIZONTAL_WS = re.compile(r"[ \t\f\v]+")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


def sanitize_message(message: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """
    Sanitize a user message.

    - Removes null bytes
    - Normalizes line endings and runs of spaces
    - Strips leading/trailing whitespace
    - Limits length
    """
    if not message:
        return ""

    cleaned = message.replace("\x00", "").replace("\r\n", "\n").replace("\r", "\n")
    cleaned = _HORIZONTAL_WS.sub(" ", cleaned)
    cleaned = _EXCESS_NEWLINES.sub("\n\n", cleaned)
    cleaned = cleaned.strip()

    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length]

    return cleaned


def validate_conversation_id(conversation_id: Optional[str]) -> Tuple[bool, Optional[str]]:
    """
    Validate a caller-supplied conversation id.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if conversation_id is None:
        return True, None  # Will be generated

    if not conversation_id.strip():
        return False, "conversationId cannot be empty"

    if len(conversation_id) > MAX_CONVERSATION_ID_LENGTH:
        return False, f"conversationId too long (max {MAX_CONVERSATION_ID_LENGTH} characters)"

    if not _CONVERSATION_ID_PATTERN.match(conversation_id):
        return False, "conversationId may only contain letters, digits, '_', '-', '.', ':'"

    return True, None


def validate_message(message: str) -> Tuple[bool, str, Optional[str]]:
    """
    Full validation and sanitization of a message.

    Returns:
        Tuple of (is_valid, sanitized_message, error_message)
    """
    if not message or not message.strip():
        return False, "", "Message cannot be empty"

    if len(message) > MAX_MESSAGE_LENGTH * 2:
        return False, "", f"Message too long (max {MAX_MESSAGE_LENGTH} characters)"

    sanitized = sanitize_message(message)
    if not sanitized:
        return False, "", "Message cannot be empty after sanitization"

    return True, sanitized, None


def validate_model_hint(model: str, known_backends: Iterable[str]) -> Tuple[bool, Optional[str]]:
    """
    Cheap syntactic check of a model hint before it reaches the gateway.

    Accepts "auto", a backend name, "<backend>:<model>", or any other
    non-empty token (the gateway decides whether it is a known variant).
    """
    if not model or not model.strip():
        return False, "model cannot be empty"

    if len(model) > 200:
        return False, "model hint too long"

    backend, sep, rest = model.partition(":")
    if sep and backend.lower() in set(known_backends) and not rest.strip():
        return False, f"Missing model name after '{backend}:'"

    return True, None
