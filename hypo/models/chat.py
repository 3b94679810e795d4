"""
Request and Response models for the Chat API.

These Pydantic models define the contract between the chat widget and the
server. Field names on the wire are camelCase (``conversationId``,
``modelUsed``) to match the widget; Python attributes stay snake_case and
either form is accepted on input.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ChatRequest(CamelModel):
    """
    Request model for /chat and /chat/stream.

    Attributes:
        message: The user's message.
        conversation_id: Conversation to continue; minted by the server when absent.
        model: Model hint: "auto", a backend name, "backend:model" or a Sonar variant.
    """
    message: str = Field(
        ...,
        min_length=1,
        max_length=4000,
        description="The user's message",
        examples=["Summarise the tasks due this week"],
    )
    conversation_id: Optional[str] = Field(
        default=None,
        alias="conversationId",
        max_length=128,
        description="Conversation to continue",
    )
    model: str = Field(
        default="auto",
        description="Model hint: 'auto', a backend name, 'backend:model' or a Sonar variant",
    )


class ChatResponse(CamelModel):
    """Response model for the non-streaming /chat endpoint."""
    response: str = Field(..., description="The assistant's full reply")
    conversation_id: str = Field(..., alias="conversationId")
    model_used: Optional[str] = Field(default=None, alias="modelUsed")
    service: Optional[str] = Field(default=None, description="Backend that produced the reply")
    processing_time: Optional[int] = Field(default=None, alias="processingTime", description="Milliseconds")
    from_cache: bool = Field(default=False, alias="fromCache")
    timestamp: datetime = Field(default_factory=_utcnow)


class HistoryMessage(CamelModel):
    id: Optional[str] = None
    sender: str
    text: str
    timestamp: Optional[str] = None


class ConversationHistoryResponse(CamelModel):
    """Paged history of one conversation."""
    conversation_id: str = Field(..., alias="conversationId")
    messages: List[HistoryMessage]
    total_messages: int = Field(..., alias="totalMessages")
    has_more: bool = Field(..., alias="hasMore")
    summary: Dict[str, Any] = Field(default_factory=dict)
    context: Dict[str, Any] = Field(default_factory=dict)


class ServiceHealth(BaseModel):
    service: str
    connection: str
    model: Optional[str] = None


class HealthResponse(BaseModel):
    """Response model for the /health endpoint."""
    status: str = Field(default="healthy")
    version: str
    services: List[ServiceHealth] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_utcnow)


class LocalModelRequest(CamelModel):
    """Body of POST /models/local."""
    action: Literal["list", "check", "pull", "delete", "benchmark"]
    model_name: Optional[str] = Field(default=None, alias="modelName")


class SonarSwitchRequest(BaseModel):
    """Body of POST /models/sonar/switch."""
    model: str = Field(..., min_length=1)


class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: str
    message: str
    details: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)
