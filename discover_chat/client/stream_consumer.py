"""Client side of the chat stream: state machine, HTTP consumer and tool display."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx
from pydantic import ValidationError as PydanticValidationError

from discover_chat.models.events import (
    ErrorEvent,
    MessageEndEvent,
    MessageStartEvent,
    ProtocolEvent,
    TextDeltaEvent,
    TokenUsage,
    ToolCallEndEvent,
    ToolCallErrorEvent,
    ToolCallStartEvent,
)
from discover_chat.models.streaming import InvocationStatus, StreamingContentPart, TextPart, ToolPart
from discover_chat.models.tools import SuggestPlaylistOutput
from discover_chat.utils.logging import get_logger
from discover_chat.utils.sse import iter_sse_events

logger = get_logger(__name__)


@dataclass
class ToolCallView:
    """What the client knows about one tool call."""

    tool_call_id: str
    tool_name: str = ""
    input: dict[str, Any] = field(default_factory=dict)
    status: InvocationStatus = InvocationStatus.EXECUTING
    summary: str | None = None
    result_count: int | None = None
    duration_ms: int | None = None
    was_retried: bool = False
    output: dict[str, Any] | None = None
    error: str | None = None
    retryable: bool | None = None


@dataclass
class ChatMessage:
    role: Literal["user", "assistant"]
    text: str = ""
    id: str | None = None


@dataclass
class StreamError:
    code: str
    message: str
    retryable: bool


@dataclass
class ChatStreamState:
    """Rendering state of a chat, driven by protocol events.

    Tool calls and streaming parts describe the latest assistant message
    only; they are kept after ``message_end`` for display and cleared by the
    next ``message_start``.
    """

    messages: list[ChatMessage] = field(default_factory=list)
    tool_calls: dict[str, ToolCallView] = field(default_factory=dict)
    parts: list[StreamingContentPart] = field(default_factory=list)
    streaming: bool = False
    error: StreamError | None = None
    conversation_id: str | None = None
    usage: TokenUsage | None = None
    cancelled: bool = False

    @property
    def assistant_message(self) -> ChatMessage | None:
        if self.messages and self.messages[-1].role == "assistant":
            return self.messages[-1]
        return None

    def add_user_message(self, text: str) -> None:
        self.messages.append(ChatMessage(role="user", text=text))
        self.error = None
        self.cancelled = False

    def apply(self, event: ProtocolEvent) -> None:
        """Fold one event into the state."""
        match event:
            case MessageStartEvent():
                self.messages.append(ChatMessage(role="assistant", id=event.message_id))
                self.conversation_id = event.conversation_id
                self.tool_calls.clear()
                self.parts.clear()
                self.usage = None
                self.error = None
                self.streaming = True

            case TextDeltaEvent():
                message = self.assistant_message
                if message is None:
                    logger.warning("text_delta before message_start, ignoring")
                    return
                message.text += event.content
                if self.parts and isinstance(self.parts[-1], TextPart):
                    self.parts[-1] = TextPart(self.parts[-1].content + event.content)
                else:
                    self.parts.append(TextPart(event.content))

            case ToolCallStartEvent():
                view = self._tool_call(event.tool_call_id)
                view.tool_name = event.tool_name
                view.input = event.input
                view.status = InvocationStatus.EXECUTING
                self.parts.append(ToolPart(event.tool_call_id))

            case ToolCallEndEvent():
                view = self._tool_call(event.tool_call_id)
                view.status = InvocationStatus.COMPLETED
                view.summary = event.summary
                view.result_count = event.result_count
                view.duration_ms = event.duration_ms
                view.was_retried = event.was_retried
                view.output = event.output

            case ToolCallErrorEvent():
                view = self._tool_call(event.tool_call_id)
                view.status = InvocationStatus.FAILED
                view.error = event.error
                view.retryable = event.retryable
                view.was_retried = event.was_retried

            case MessageEndEvent():
                self.usage = event.usage
                self.streaming = False

            case ErrorEvent():
                self.error = StreamError(code=event.code, message=event.message, retryable=event.retryable)
                self.streaming = False

    def mark_cancelled(self) -> None:
        """The user aborted the stream; content received so far stays."""
        self.streaming = False
        self.cancelled = True

    def _tool_call(self, tool_call_id: str) -> ToolCallView:
        view = self.tool_calls.get(tool_call_id)
        if view is None:
            view = ToolCallView(tool_call_id=tool_call_id)
            self.tool_calls[tool_call_id] = view
        return view


# Tool display


@dataclass
class ToolDisplay:
    kind: Literal["pending", "error", "search", "playlist"]
    title: str
    lines: list[str] = field(default_factory=list)


def render_search_summary(view: ToolCallView) -> ToolDisplay:
    lines = []
    if view.result_count is not None:
        lines.append(f"{view.result_count} result(s) in {view.duration_ms}ms")
    if view.was_retried:
        lines.append("(succeeded after retry)")
    return ToolDisplay(kind="search", title=view.summary or view.tool_name, lines=lines)


def render_playlist_card(view: ToolCallView) -> ToolDisplay:
    try:
        playlist = SuggestPlaylistOutput.model_validate(view.output or {})
    except PydanticValidationError as e:
        logger.warning(f"Playlist output of {view.tool_call_id} is malformed: {e}")
        return render_search_summary(view)

    lines = [f"{i}. {track.title} - {track.artist}: {track.reasoning}" for i, track in enumerate(playlist.tracks, 1)]
    if playlist.stats.failed_tracks:
        lines.append(f"{playlist.stats.failed_tracks} track(s) without catalogue details")
    return ToolDisplay(kind="playlist", title=playlist.title, lines=lines)


TOOL_RENDERERS: dict[str, Callable[[ToolCallView], ToolDisplay]] = {
    "suggestPlaylist": render_playlist_card,
}


def render_tool_call(view: ToolCallView) -> ToolDisplay:
    """Display for a tool call, chosen by tool name."""
    if view.status is InvocationStatus.EXECUTING:
        return ToolDisplay(kind="pending", title=f"Running {view.tool_name}...")
    if view.status is InvocationStatus.FAILED:
        suffix = " (retryable)" if view.retryable else ""
        return ToolDisplay(kind="error", title=f"{view.tool_name} failed{suffix}", lines=[view.error or ""])
    renderer = TOOL_RENDERERS.get(view.tool_name, render_search_summary)
    return renderer(view)


# HTTP consumer


class ChatStreamClient:
    """Sends messages to the chat stream endpoint and folds events into a state."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 120.0,
    ):
        """Initialize the stream client.

        Args:
            base_url: Service root URL
            http_client: Client to send requests with (one is created when omitted)
            timeout: Read timeout for streaming responses, in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.http_client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=10.0))
        self.state = ChatStreamState()
        self._task: asyncio.Task | None = None
        self._cancel_requested = False

    async def send(
        self, message: str, on_event: Callable[[ProtocolEvent, ChatStreamState], None] | None = None
    ) -> ChatStreamState:
        """Send a message and consume the response stream until it ends or is cancelled.

        Errors end up in ``state.error``; cancellation leaves it unset.
        """
        self.state.add_user_message(message)
        self._cancel_requested = False
        self._task = asyncio.create_task(self._consume(message, on_event))
        try:
            await self._task
        except asyncio.CancelledError:
            if not (self._cancel_requested and self._task.cancelled()):
                raise
            logger.info("Stream cancelled by the user")
            self.state.mark_cancelled()
        finally:
            self._task = None
        return self.state

    def cancel(self) -> None:
        """Abort the in-flight stream, if any."""
        if self._task is not None and not self._task.done():
            self._cancel_requested = True
            self._task.cancel()

    def new_conversation(self) -> None:
        self.state = ChatStreamState()

    async def aclose(self) -> None:
        await self.http_client.aclose()

    async def _consume(
        self, message: str, on_event: Callable[[ProtocolEvent, ChatStreamState], None] | None
    ) -> None:
        payload: dict[str, Any] = {"message": message}
        if self.state.conversation_id:
            payload["conversationId"] = self.state.conversation_id

        try:
            async with self.http_client.stream("POST", f"{self.base_url}/api/chat/stream", json=payload) as response:
                if response.status_code != 200:
                    await response.aread()
                    self.state.error = self._rejection(response)
                    return
                async for event in iter_sse_events(response.aiter_lines()):
                    self.state.apply(event)
                    if on_event is not None:
                        on_event(event, self.state)
        except httpx.HTTPError as e:
            logger.error(f"Chat stream request failed: {e}")
            self.state.error = StreamError(
                code="NETWORK_ERROR", message="Could not reach the chat service.", retryable=True
            )
            self.state.streaming = False

    @staticmethod
    def _rejection(response: httpx.Response) -> StreamError:
        """Error of a request rejected before streaming began."""
        try:
            body = response.json()
        except ValueError:
            body = {}
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            return StreamError(
                code=str(error.get("code", "HTTP_ERROR")),
                message=str(error.get("message", "Request failed")),
                retryable=bool(error.get("retryable", False)),
            )
        return StreamError(code="HTTP_ERROR", message=f"Request failed ({response.status_code})", retryable=False)
