"""Tracing for chat generations and tool calls.

Each chat stream opens one trace. The generation and every tool invocation
get a span under that trace, opened at dispatch and closed exactly once with
either success or error metadata.

Usage:
    trace = tracer.start_trace("chat-message", session_id=conversation_id)
    span = trace.create_span("tool", {"toolName": "semanticSearch"})
    span.end({"summary": "...", "resultCount": 3, "durationMs": 41})
    await tracer.flush()
"""

import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from discover_chat.utils.logging import get_logger

logger = get_logger(__name__)

# Large inputs are truncated before being attached to spans
MAX_QUERY_LENGTH = 500
MAX_ARRAY_ITEMS = 10


class SpanStatus(str, Enum):
    OPEN = "open"
    OK = "ok"
    ERROR = "error"


@dataclass
class Span:
    """A single traced operation."""

    kind: str
    trace_id: str
    span_id: str
    start_time: float
    metadata: dict[str, Any] = field(default_factory=dict)
    end_time: float | None = None
    status: SpanStatus = SpanStatus.OPEN
    output: dict[str, Any] = field(default_factory=dict)

    @property
    def closed(self) -> bool:
        return self.status is not SpanStatus.OPEN

    @property
    def duration_ms(self) -> float | None:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time) * 1000

    def end(self, success_meta: dict[str, Any] | None = None) -> None:
        """Close the span as successful."""
        self._close(SpanStatus.OK, success_meta or {})

    def end_error(self, error_meta: dict[str, Any]) -> None:
        """Close the span as failed."""
        self._close(SpanStatus.ERROR, error_meta)

    def _close(self, status: SpanStatus, meta: dict[str, Any]) -> None:
        if self.closed:
            logger.warning(f"Span {self.kind}/{self.span_id} already closed as {self.status.value}, ignoring")
            return
        self.end_time = time.monotonic()
        self.status = status
        self.output = dict(meta)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "traceId": self.trace_id,
            "spanId": self.span_id,
            "status": self.status.value,
            "durationMs": self.duration_ms,
            "metadata": self.metadata,
            "output": self.output,
        }


class Trace:
    """Groups the spans of one chat stream."""

    def __init__(self, name: str, session_id: str | None, metadata: dict[str, Any], tracer: "LoggingTracer"):
        self.trace_id = uuid.uuid4().hex
        self.name = name
        self.session_id = session_id
        self.metadata = metadata
        self._tracer = tracer

    def create_span(self, kind: str, metadata: dict[str, Any] | None = None) -> Span:
        span = Span(
            kind=kind,
            trace_id=self.trace_id,
            span_id=uuid.uuid4().hex[:16],
            start_time=time.monotonic(),
            metadata=sanitize_input(metadata or {}),
        )
        self._tracer.record(span)
        return span


class Tracer(Protocol):
    """Interface for tracing backends."""

    def start_trace(self, name: str, session_id: str | None = None, metadata: dict[str, Any] | None = None) -> Trace:
        ...

    async def flush(self) -> None:
        ...


class LoggingTracer:
    """Tracer that writes finished spans to the application log on flush."""

    def __init__(self, history_size: int = 1000) -> None:
        self.spans: list[Span] = []
        self.recent: deque[Span] = deque(maxlen=history_size)

    def start_trace(self, name: str, session_id: str | None = None, metadata: dict[str, Any] | None = None) -> Trace:
        trace = Trace(name, session_id, metadata or {}, self)
        logger.debug(f"Trace {trace.trace_id} started: {name} (session {session_id})")
        return trace

    def record(self, span: Span) -> None:
        self.spans.append(span)

    async def flush(self) -> None:
        """Log and drop all closed spans; open spans stay buffered."""
        finished = [span for span in self.spans if span.closed]
        self.spans = [span for span in self.spans if not span.closed]
        for span in finished:
            level = "error" if span.status is SpanStatus.ERROR else "info"
            getattr(logger, level)(f"span {span.to_dict()}")
        self.recent.extend(finished)


def sanitize_input(value: Any) -> Any:
    """Truncate long queries and large arrays before attaching them to a span."""
    if isinstance(value, list):
        if len(value) > MAX_ARRAY_ITEMS:
            return {"_type": "array", "_length": len(value), "_sample": value[:5]}
        return [sanitize_input(item) for item in value]

    if isinstance(value, dict):
        result: dict[str, Any] = {}
        for key, item in value.items():
            if key == "query" and isinstance(item, str) and len(item) > MAX_QUERY_LENGTH:
                result[key] = item[:MAX_QUERY_LENGTH] + "...[truncated]"
            else:
                result[key] = sanitize_input(item)
        return result

    return value
