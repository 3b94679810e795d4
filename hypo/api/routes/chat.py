"""
Chat Routes - API endpoints for conversational interactions.

- POST /chat                           : full reply as JSON
- POST /chat/stream                    : reply as Server-Sent Events
- GET /chat/conversations/{id}         : paged history and context summary
- DELETE /chat/conversations/{id}      : forget a conversation
- GET /chat/stats                      : cache, store and rate-limit statistics

Both chat endpoints validate, rate-limit and record the user message before
responding, so a cooldown rejection is always a plain HTTP 429 and never a
half-open stream.
"""
from contextlib import aclosing
from typing import Any, AsyncIterator, Dict

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from hypo.api.dependencies import get_client_id, get_orchestrator
from hypo.core.logging_config import get_logger
from hypo.models.chat import ChatRequest, ChatResponse, ConversationHistoryResponse, ErrorResponse
from hypo.services.stream_orchestrator import StreamOrchestrator, Turn

logger = get_logger(__name__)

router = APIRouter(
    prefix="/chat",
    tags=["Chat"],
    responses={
        429: {"model": ErrorResponse, "description": "Cooldown active, retry after waitTime seconds"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.post(
    "",
    response_model=ChatResponse,
    summary="Send a message and wait for the full reply",
)
async def send_message(
    request: ChatRequest,
    orchestrator: StreamOrchestrator = Depends(get_orchestrator),
    client_id: str = Depends(get_client_id),
) -> ChatResponse:
    """
    Process a user message and return the assistant's response.

    Backend failures are answered with ``{error: "backend_error", errorType,
    message, suggestion}`` and a 4xx/5xx status.
    """
    turn = orchestrator.start(request.conversation_id, request.message, request.model, client_id)
    result = await orchestrator.complete(turn)
    return ChatResponse(
        response=result.response,
        conversation_id=result.conversation_id,
        model_used=result.model_used,
        service=result.service,
        processing_time=result.processing_time,
        from_cache=result.from_cache,
    )


async def _event_source(orchestrator: StreamOrchestrator, turn: Turn) -> AsyncIterator[str]:
    # Client disconnect cancels this generator; aclosing propagates the close to the backend stream
    async with aclosing(orchestrator.stream(turn)) as events:
        async for event in events:
            yield event.to_sse()


@router.post(
    "/stream",
    summary="Send a message and stream the reply",
    response_class=StreamingResponse,
    responses={200: {"content": {"text/event-stream": {}}}},
)
async def stream_message(
    request: ChatRequest,
    orchestrator: StreamOrchestrator = Depends(get_orchestrator),
    client_id: str = Depends(get_client_id),
) -> StreamingResponse:
    """
    Stream the reply as ``data: <json>\\n\\n`` frames.

    Frames are ``chunk`` events followed by exactly one ``done`` or
    ``error`` event.
    """
    turn = orchestrator.start(request.conversation_id, request.message, request.model, client_id)
    headers = dict(SSE_HEADERS, **{"X-Conversation-Id": turn.conversation_id})
    return StreamingResponse(
        _event_source(orchestrator, turn),
        media_type="text/event-stream",
        headers=headers,
    )


@router.get(
    "/conversations/{conversation_id}",
    response_model=ConversationHistoryResponse,
    summary="Conversation history",
)
async def get_conversation(
    conversation_id: str,
    limit: int = Query(default=20, ge=1, le=100),
    orchestrator: StreamOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    return orchestrator.conversation_history(conversation_id, limit=limit)


@router.delete(
    "/conversations/{conversation_id}",
    summary="Delete a conversation",
)
async def delete_conversation(
    conversation_id: str,
    orchestrator: StreamOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    """Removes the conversation and the cache entries written for it. Idempotent."""
    return orchestrator.delete_conversation(conversation_id)


@router.get("/stats", summary="Cache, conversation and rate-limit statistics")
async def get_stats(orchestrator: StreamOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    return orchestrator.stats()
