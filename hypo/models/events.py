"""
Stream events and their Server-Sent Events encoding.

A turn produces zero or more ``chunk`` events followed by exactly one
terminal event, ``done`` or ``error``. Each event is framed as::

    data: <compact JSON>\\n\\n

Optional fields that are unset are omitted from the payload rather than
sent as null.
"""
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

CHUNK = "chunk"
DONE = "done"
ERROR = "error"


def encode_sse(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False, separators=(',', ':'))}\n\n"


def _compact(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


@dataclass(frozen=True)
class ChunkEvent:
    content: str

    type = CHUNK

    def to_payload(self) -> Dict[str, Any]:
        return {"type": self.type, "content": self.content}

    def to_sse(self) -> str:
        return encode_sse(self.to_payload())


@dataclass(frozen=True)
class DoneEvent:
    full_text: str
    model_used: Optional[str] = None
    processing_time: Optional[int] = None
    service: Optional[str] = None
    from_cache: Optional[bool] = None
    conversation_id: Optional[str] = None

    type = DONE

    def to_payload(self) -> Dict[str, Any]:
        return _compact({
            "type": self.type,
            "fullText": self.full_text,
            "modelUsed": self.model_used,
            "processingTime": self.processing_time,
            "service": self.service,
            "fromCache": self.from_cache,
            "conversationId": self.conversation_id,
        })

    def to_sse(self) -> str:
        return encode_sse(self.to_payload())


@dataclass(frozen=True)
class ErrorEvent:
    error_type: str
    message: str
    original_error: Optional[str] = None
    suggestion: Optional[str] = None
    conversation_id: Optional[str] = None
    service: Optional[str] = None

    type = ERROR

    def to_payload(self) -> Dict[str, Any]:
        return _compact({
            "type": self.type,
            "errorType": self.error_type,
            "message": self.message,
            "originalError": self.original_error,
            "suggestion": self.suggestion,
            "conversationId": self.conversation_id,
        })

    def to_sse(self) -> str:
        return encode_sse(self.to_payload())


StreamEvent = Union[ChunkEvent, DoneEvent, ErrorEvent]
