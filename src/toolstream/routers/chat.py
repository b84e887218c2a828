"""Chat streaming API routes."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, status
from sse_starlette.sse import EventSourceResponse

from ..chat import ChatOrchestrator
from ..chat.streaming import QueueTransport
from ..errors import ProviderRequestError
from ..schemas.chat import ChatCompletionResponse, ChatStreamRequest

router = APIRouter(prefix="/api", tags=["chat"])

# Keep-alive comments come from the heartbeat; the library ping only covers
# sockets the heartbeat has already stopped writing to.
_SSE_PING_SECONDS = 3600


@router.post("/chat/stream", response_model=None, status_code=200)
async def stream_chat(
    payload: ChatStreamRequest,
    request: Request,
) -> EventSourceResponse:
    """Run the orchestration loop and stream its events as Server-Sent Events."""

    orchestrator: ChatOrchestrator = request.app.state.chat_orchestrator
    transport = QueueTransport()
    orchestrator.start_stream(payload, transport)
    return EventSourceResponse(transport.frames(), ping=_SSE_PING_SECONDS)


@router.post("/chat/complete", response_model=ChatCompletionResponse)
async def complete_chat(
    payload: ChatStreamRequest,
    request: Request,
) -> ChatCompletionResponse:
    """Run the orchestration loop to completion and return the final answer."""

    orchestrator: ChatOrchestrator = request.app.state.chat_orchestrator
    try:
        result = await orchestrator.complete(payload)
    except ProviderRequestError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message
        ) from exc
    return ChatCompletionResponse(text=result.text, citations=result.citations)


__all__ = ["router"]
