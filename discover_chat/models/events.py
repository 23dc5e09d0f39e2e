"""Protocol event models: the single source of truth for the stream wire format.

Every record the server streams is an instance of a ``ProtocolEvent``
subclass. Keys are camelCase on the wire; serialization uses
``model_dump(by_alias=True, exclude_none=True)``.
"""

from typing import Any, Literal

from pydantic import ConfigDict

from discover_chat.models.base import CamelModel


class ProtocolEvent(CamelModel):
    """Base class for all stream events."""

    model_config = ConfigDict(extra="forbid")

    type: str


class MessageStartEvent(ProtocolEvent):
    """Sent exactly once, before any delta."""

    type: Literal["message_start"] = "message_start"
    message_id: str
    conversation_id: str


class TextDeltaEvent(ProtocolEvent):
    type: Literal["text_delta"] = "text_delta"
    content: str


class ToolCallStartEvent(ProtocolEvent):
    type: Literal["tool_call_start"] = "tool_call_start"
    tool_call_id: str
    tool_name: str
    input: dict[str, Any]


class ToolCallEndEvent(ProtocolEvent):
    """Tool completed; ``output`` carries the full result for expandable display."""

    type: Literal["tool_call_end"] = "tool_call_end"
    tool_call_id: str
    summary: str
    result_count: int
    duration_ms: int
    was_retried: bool = False
    output: dict[str, Any] | None = None


class ToolCallErrorEvent(ProtocolEvent):
    type: Literal["tool_call_error"] = "tool_call_error"
    tool_call_id: str
    error: str
    retryable: bool
    was_retried: bool


class TokenUsage(CamelModel):
    input_tokens: int = 0
    output_tokens: int = 0


class MessageEndEvent(ProtocolEvent):
    """Sent once, on successful completion only."""

    type: Literal["message_end"] = "message_end"
    usage: TokenUsage


class ErrorEvent(ProtocolEvent):
    """Terminal non-cancellation failure. ``message`` is always user-safe."""

    type: Literal["error"] = "error"
    code: str
    message: str
    retryable: bool


EVENT_REGISTRY: dict[str, type[ProtocolEvent]] = {
    "message_start": MessageStartEvent,
    "text_delta": TextDeltaEvent,
    "tool_call_start": ToolCallStartEvent,
    "tool_call_end": ToolCallEndEvent,
    "tool_call_error": ToolCallErrorEvent,
    "message_end": MessageEndEvent,
    "error": ErrorEvent,
}
