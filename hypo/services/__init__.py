"""
Services module - Business logic layer.

- stream_orchestrator.py : one chat turn from rate limiting to terminal event
"""
from hypo.services.stream_orchestrator import (
    CompletionResult,
    StreamOrchestrator,
    Turn,
    TurnState,
    new_conversation_id,
)

__all__ = [
    "CompletionResult",
    "StreamOrchestrator",
    "Turn",
    "TurnState",
    "new_conversation_id",
]
