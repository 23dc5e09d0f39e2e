"""Transient state of one generation loop."""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal


class InvocationStatus(str, Enum):
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ToolInvocation:
    """A single model-requested tool call.

    Created as ``EXECUTING`` on dispatch and moved exactly once to a
    terminal status.
    """

    id: str
    name: str
    input: dict[str, Any]
    status: InvocationStatus = InvocationStatus.EXECUTING
    output: dict[str, Any] | None = None
    error: str | None = None
    retryable: bool = False
    was_retried: bool = False
    duration_ms: int = 0
    summary: str | None = None
    result_count: int = 0

    @property
    def pending(self) -> bool:
        return self.status is InvocationStatus.EXECUTING

    def complete(self, output: dict[str, Any], summary: str, result_count: int, duration_ms: int) -> None:
        self._require_pending()
        self.status = InvocationStatus.COMPLETED
        self.output = output
        self.summary = summary
        self.result_count = result_count
        self.duration_ms = duration_ms

    def fail(self, error: str, retryable: bool, was_retried: bool, duration_ms: int) -> None:
        self._require_pending()
        self.status = InvocationStatus.FAILED
        self.error = error
        self.retryable = retryable
        self.was_retried = was_retried
        self.duration_ms = duration_ms

    def _require_pending(self) -> None:
        if not self.pending:
            raise RuntimeError(f"Tool invocation {self.id} already {self.status.value}")


@dataclass(frozen=True)
class TextPart:
    content: str
    kind: Literal["text"] = "text"


@dataclass(frozen=True)
class ToolPart:
    tool_id: str
    kind: Literal["tool"] = "tool"


StreamingContentPart = TextPart | ToolPart


@dataclass(frozen=True)
class FrozenGeneration:
    """Immutable snapshot handed to reconciliation."""

    parts: tuple[StreamingContentPart, ...]
    invocations: dict[str, ToolInvocation]


@dataclass
class GenerationAccumulator:
    """Ordered content parts and tool invocations of one generation loop.

    Scoped to a single orchestrator call and never shared between calls.
    """

    parts: list[StreamingContentPart] = field(default_factory=list)
    invocations: dict[str, ToolInvocation] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.parts

    @property
    def text(self) -> str:
        return "".join(part.content for part in self.parts if isinstance(part, TextPart))

    def append_text(self, text: str) -> None:
        """Merge into the last part if it is text, else start a new text part."""
        if self.parts and isinstance(self.parts[-1], TextPart):
            self.parts[-1] = TextPart(self.parts[-1].content + text)
        else:
            self.parts.append(TextPart(text))

    def start_tool(self, tool_id: str, name: str, tool_input: dict[str, Any]) -> ToolInvocation:
        """Register a dispatched call and place its part at the observed position."""
        if tool_id in self.invocations:
            raise ValueError(f"Duplicate tool call id {tool_id}")
        invocation = ToolInvocation(id=tool_id, name=name, input=dict(tool_input))
        self.invocations[tool_id] = invocation
        self.parts.append(ToolPart(tool_id))
        return invocation

    def freeze(self) -> FrozenGeneration:
        return FrozenGeneration(parts=tuple(self.parts), invocations=copy.deepcopy(self.invocations))
