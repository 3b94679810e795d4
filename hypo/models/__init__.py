"""
Models module - Pydantic schemas and stream events.

- chat.py   : request/response models for the HTTP API
- events.py : chunk/done/error stream events and their SSE framing
"""
from hypo.models.chat import (
    ChatRequest,
    ChatResponse,
    ConversationHistoryResponse,
    ErrorResponse,
    HealthResponse,
    LocalModelRequest,
    SonarSwitchRequest,
)
from hypo.models.events import ChunkEvent, DoneEvent, ErrorEvent, StreamEvent

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "ChunkEvent",
    "ConversationHistoryResponse",
    "DoneEvent",
    "ErrorEvent",
    "ErrorResponse",
    "HealthResponse",
    "LocalModelRequest",
    "SonarSwitchRequest",
    "StreamEvent",
]
