"""
FastAPI Router for the Assistant.

Provides the SSE chat stream and REST endpoints for buffered turns and
session history.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from ..domain.entities import MessageRole, UserContext
from ..domain.exceptions import OrchestratorError
from ..orchestrator import OrchestratorPool
from ..streaming.sse import KEEP_ALIVE, encode_stream
from .auth import get_user_context_jwt
from .error_sanitizer import sanitize_error_message
from .schemas import (
    ChatStreamRequest,
    HealthResponse,
    HistoryResponse,
    RespondRequest,
    RespondResponse,
    TurnResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])

KEEP_ALIVE_SECONDS = 10.0


# =============================================================================
# Dependencies
# =============================================================================


class AssistantDependencies:
    """Container for assistant dependencies.

    Injected at application startup.
    """

    pool: Optional[OrchestratorPool] = None
    model_name: Optional[str] = None


_deps = AssistantDependencies()


def create_assistant_dependencies(
    pool: Optional[OrchestratorPool],
    model_name: Optional[str] = None,
) -> None:
    """Initialize assistant dependencies.

    Call this at application startup (and with None at shutdown).

    Args:
        pool: Pool of per-session orchestrators
        model_name: Name of the configured model, for health checks
    """
    _deps.pool = pool
    _deps.model_name = model_name


def get_pool() -> OrchestratorPool:
    """Get the orchestrator pool dependency."""
    if not _deps.pool:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Assistant not initialized",
        )
    return _deps.pool


def get_user_context(
    context: UserContext = Depends(get_user_context_jwt),
) -> UserContext:
    """Get user context from validated JWT token."""
    return context


def _describe_error(error: Exception) -> str:
    return sanitize_error_message(str(error))


# =============================================================================
# Chat Endpoints
# =============================================================================


@router.post("/stream")
async def chat_stream(
    request: Request,
    body: ChatStreamRequest,
    context: UserContext = Depends(get_user_context),
    pool: OrchestratorPool = Depends(get_pool),
):
    """Stream a response as Server-Sent Events.

    Frames:
    - connection: Sent once when the stream opens
    - message: One per text chunk, with id = chunk sequence
    - complete: Terminal, data [DONE]
    - error: Terminal, data {"error": message}

    Disconnecting before ``complete`` abandons the turn; nothing is
    recorded in the session history.
    """
    session_context = context.with_session(body.session_id)
    message = body.combined_message()
    queue: asyncio.Queue[Optional[str]] = asyncio.Queue()

    async def chunks():
        if not message.strip():
            raise ValueError("No user messages found in request")
        orchestrator = await pool.get(session_context)
        async with await orchestrator.respond_stream(message) as stream:
            async for chunk in stream:
                yield chunk

    async def produce():
        """Encode the turn and publish frames to the queue."""
        source = chunks()
        try:
            async for frame in encode_stream(context.user_id, source, describe_error=_describe_error):
                await queue.put(frame)
        finally:
            await source.aclose()
            await queue.put(None)

    async def event_generator():
        """Generate SSE frames from the queue."""
        logger.info(f"Opening chat stream for session {body.session_id}")
        task = asyncio.create_task(produce())

        try:
            while True:
                if await request.is_disconnected():
                    logger.info("Client disconnected from SSE stream")
                    break

                try:
                    # Wait for next frame with timeout (for keep-alive)
                    frame = await asyncio.wait_for(queue.get(), timeout=KEEP_ALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield KEEP_ALIVE
                    continue

                if frame is None:
                    break
                yield frame

        finally:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            logger.info(f"Closed chat stream for session {body.session_id}")

    headers = {
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "X-Accel-Buffering": "no",  # Disable Nginx buffering
    }

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers=headers,
    )


@router.post("/respond", response_model=RespondResponse)
async def respond(
    body: RespondRequest,
    context: UserContext = Depends(get_user_context),
    pool: OrchestratorPool = Depends(get_pool),
) -> RespondResponse:
    """Process a message and return the whole response."""
    orchestrator = await pool.get(context.with_session(body.session_id))

    try:
        response = await orchestrator.respond(
            body.message,
            additional_context=body.additional_context,
        )
    except OrchestratorError as e:
        logger.error(f"Turn failed ({e.kind.value}): {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=sanitize_error_message(str(e)),
        )

    return RespondResponse.from_domain(response)


# =============================================================================
# Session Endpoints
# =============================================================================


@router.get("/sessions/{session_id}/history", response_model=HistoryResponse)
async def get_history(
    session_id: str,
    context: UserContext = Depends(get_user_context),
    pool: OrchestratorPool = Depends(get_pool),
) -> HistoryResponse:
    """Get the committed turns of a session."""
    orchestrator = await pool.get(context.with_session(session_id))
    turns = [
        TurnResponse.from_domain(turn)
        for turn in orchestrator.snapshot()
        if turn.role != MessageRole.SYSTEM
    ]
    return HistoryResponse(session_id=session_id, turns=turns)


@router.delete("/sessions/{session_id}/history", status_code=status.HTTP_204_NO_CONTENT)
async def clear_history(
    session_id: str,
    context: UserContext = Depends(get_user_context),
    pool: OrchestratorPool = Depends(get_pool),
) -> None:
    """Clear a session's history."""
    await pool.clear(context.with_session(session_id))


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Report whether the assistant is initialized."""
    if not _deps.pool:
        return HealthResponse(status="unavailable")
    return HealthResponse(status="ok", model=_deps.model_name, sessions=len(_deps.pool))
