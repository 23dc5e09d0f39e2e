"""Conversation, message and request/response models."""

from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from discover_chat.models.base import CamelModel


class ContentBlock(CamelModel):
    """One persisted unit of message content.

    ``text`` blocks carry ``text``; ``tool_use`` blocks carry the tool id, name
    and input; ``tool_result`` blocks carry the tool id and either the tool
    output or an ``{"error", "retryable"}`` mapping.
    """

    type: Literal["text", "tool_use", "tool_result"]
    text: str | None = None
    tool_id: str | None = None
    tool_name: str | None = None
    tool_input: dict[str, Any] | None = None
    tool_result: Any = None

    @classmethod
    def text_block(cls, text: str) -> "ContentBlock":
        return cls(type="text", text=text)

    @classmethod
    def tool_use(cls, tool_id: str, name: str, tool_input: dict[str, Any]) -> "ContentBlock":
        return cls(type="tool_use", tool_id=tool_id, tool_name=name, tool_input=tool_input)

    @classmethod
    def tool_result_block(cls, tool_id: str, result: Any) -> "ContentBlock":
        return cls(type="tool_result", tool_id=tool_id, tool_result=result)


class Message(CamelModel):
    """A persisted conversation message."""

    id: str
    conversation_id: str
    role: Literal["user", "assistant"]
    content: list[ContentBlock]
    created_at: datetime

    def text(self) -> str | None:
        """Joined text of all text blocks, or None when the message has no text."""
        texts = [block.text for block in self.content if block.type == "text" and block.text]
        return "\n".join(texts) if texts else None


class Conversation(CamelModel):
    """A conversation owning an ordered list of messages."""

    id: str
    created_at: datetime
    updated_at: datetime
    messages: list[Message] = Field(default_factory=list)


class ChatStreamRequest(CamelModel):
    """Request model for the chat stream endpoint.

    Emptiness is checked by the orchestrator so that it is rejected with the
    same error whether the request arrives over HTTP or in-process.
    """

    message: str
    conversation_id: str | None = None


class ConversationResponse(CamelModel):
    """Response model for reading a conversation."""

    id: str
    created_at: datetime
    updated_at: datetime
    messages: list[Message]


class HealthResponse(CamelModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
