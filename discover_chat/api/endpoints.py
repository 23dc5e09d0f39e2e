"""API endpoints for the music discovery chat service."""

import asyncio
from collections.abc import AsyncIterator
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from discover_chat import __version__
from discover_chat.models.conversation import ChatStreamRequest, ConversationResponse, HealthResponse
from discover_chat.models.events import ProtocolEvent
from discover_chat.services.container import ServiceContainer
from discover_chat.utils.cancellation import CancellationToken
from discover_chat.utils.errors import NotFoundError
from discover_chat.utils.logging import get_logger
from discover_chat.utils.sse import encode_event

logger = get_logger(__name__)

router = APIRouter()

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


@router.post("/api/chat/stream", tags=["Chat"])
async def chat_stream(
    body: ChatStreamRequest, container: ServiceContainer = Depends(get_container)
) -> StreamingResponse:
    """Stream the assistant's response to a user message.

    Validation, unknown conversations and busy conversations are rejected
    before the response starts. After that every outcome travels in the
    event stream. A client disconnect cancels the generation, which still
    persists whatever content it produced.
    """
    orchestrator = container.orchestrator
    session = await orchestrator.prepare(body.message, body.conversation_id)
    logger.info(f"Streaming message {session.message_id} into conversation {session.conversation_id}")

    token = CancellationToken()
    queue: asyncio.Queue[ProtocolEvent | None] = asyncio.Queue()

    async def generate() -> None:
        try:
            await orchestrator.run(session, queue.put_nowait, token)
        finally:
            queue.put_nowait(None)

    task = asyncio.create_task(generate())
    container.track(task)

    async def event_records() -> AsyncIterator[str]:
        try:
            while (event := await queue.get()) is not None:
                yield encode_event(event)
        finally:
            if not task.done():
                logger.info(f"Client disconnected from conversation {session.conversation_id}, cancelling")
                token.cancel()

    return StreamingResponse(event_records(), media_type="text/event-stream", headers=STREAM_HEADERS)


@router.get("/api/conversations/{conversation_id}", response_model=ConversationResponse, tags=["Chat"])
async def get_conversation(
    conversation_id: str, container: ServiceContainer = Depends(get_container)
) -> ConversationResponse:
    """Return a conversation with its persisted messages."""
    conversation = await container.store.get_conversation(conversation_id)
    if conversation is None:
        raise NotFoundError(f"Conversation {conversation_id} not found")
    return ConversationResponse(
        id=conversation.id,
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
        messages=conversation.messages,
    )


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )
