"""Tools registry: lookup, validation, retry and tracing for agent tool calls."""

import asyncio
import time
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from discover_chat.models.llm import LLMTool
from discover_chat.models.tools import ToolOutput
from discover_chat.services.music import MusicServices
from discover_chat.services.tracing import Trace
from discover_chat.tools.album_tracks import create_album_tracks_tool
from discover_chat.tools.base import ToolDefinition, elapsed_ms
from discover_chat.tools.batch_metadata import create_batch_metadata_tool
from discover_chat.tools.retry import RetryConfig, execute_with_retry
from discover_chat.tools.semantic_search import create_semantic_search_tool
from discover_chat.tools.suggest_playlist import create_suggest_playlist_tool
from discover_chat.tools.tidal_search import create_tidal_search_tool
from discover_chat.utils.errors import ToolExecutionError
from discover_chat.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ToolCallResult:
    """Resolution of one tool call: either an output or a tool error."""

    tool_name: str
    duration_ms: int
    was_retried: bool = False
    output: ToolOutput | None = None
    error: ToolExecutionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def output_dict(self) -> dict[str, Any]:
        return self.output.to_wire() if self.output is not None else {}


def format_validation_error(error: PydanticValidationError) -> str:
    messages = []
    for issue in error.errors():
        location = ".".join(str(part) for part in issue["loc"])
        messages.append(f"{location}: {issue['msg']}" if location else issue["msg"])
    return "Invalid input: " + ", ".join(messages)


class ToolsRegistry:
    """Registry for managing AI assistant tools."""

    def __init__(self, services: MusicServices, retry_config: RetryConfig | None = None):
        """Initialize tools registry with service dependencies."""
        self.services = services
        self.retry_config = retry_config or RetryConfig()
        self._tools: dict[str, ToolDefinition] = {}
        self._register_default_tools()

    def _register_default_tools(self) -> None:
        """Register the music discovery tool set."""
        tools = [
            create_semantic_search_tool(self.services),
            create_tidal_search_tool(self.services),
            create_album_tracks_tool(self.services),
            create_batch_metadata_tool(self.services),
            create_suggest_playlist_tool(self.services, self.retry_config),
        ]

        for tool in tools:
            self.register_tool(tool)

    def register_tool(self, tool: ToolDefinition) -> None:
        """Register a new tool in the registry."""
        self._tools[tool.name] = tool

    def get_llm_tools(self) -> list[LLMTool]:
        """Get tool definitions to advertise to the model."""
        return [tool.to_llm_tool() for tool in self._tools.values()]

    def get_tool(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    async def execute(self, tool_call_id: str, name: str, raw_input: dict[str, Any], trace: Trace) -> ToolCallResult:
        """Execute one tool call.

        Tool failures are returned, never raised. The span opened here is
        closed exactly once, including when the call is cancelled.

        Args:
            tool_call_id: The model's id for this call
            name: Tool name as requested by the model
            raw_input: Unvalidated input from the model
            trace: Trace of the current chat stream

        Returns:
            The call's output or error, its duration and whether it was retried
        """
        started = time.monotonic()
        span = trace.create_span("tool", {"toolName": name, "toolCallId": tool_call_id, "input": raw_input})

        try:
            output, was_retried = await self._run(name, raw_input)
        except asyncio.CancelledError:
            span.end_error({"error": "cancelled", "durationMs": elapsed_ms(started)})
            raise
        except ToolExecutionError as e:
            duration_ms = elapsed_ms(started)
            logger.warning(f"Tool {name} ({tool_call_id}) failed: {e.message} (retried={e.was_retried})")
            span.end_error(
                {
                    "error": e.message,
                    "code": e.code,
                    "retryable": e.retryable,
                    "wasRetried": e.was_retried,
                    "durationMs": duration_ms,
                }
            )
            return ToolCallResult(tool_name=name, duration_ms=duration_ms, was_retried=e.was_retried, error=e)

        duration_ms = elapsed_ms(started)
        tool = self._tools[name]
        span.end(
            {
                "summary": output.summary,
                "resultCount": output.result_count,
                "durationMs": duration_ms,
                "wasRetried": was_retried,
                **tool.presentation.span_metadata(output),
            }
        )
        logger.debug(f"Tool {name} ({tool_call_id}) completed in {duration_ms}ms: {output.summary}")
        return ToolCallResult(tool_name=name, duration_ms=duration_ms, was_retried=was_retried, output=output)

    async def _run(self, name: str, raw_input: dict[str, Any]) -> tuple[ToolOutput, bool]:
        tool = self._tools.get(name)
        if tool is None:
            raise ToolExecutionError(f"Unknown tool: {name}", retryable=False, code="UNKNOWN_TOOL")

        try:
            params = tool.parse_input(raw_input)
        except PydanticValidationError as e:
            raise ToolExecutionError(format_validation_error(e), retryable=False, code="VALIDATION_ERROR") from e

        if tool.presentation.self_retrying:
            try:
                return await tool.handler(params), False
            except ToolExecutionError:
                raise
            except Exception as e:
                logger.error(f"Tool {name} failed unexpectedly: {e}", exc_info=True)
                raise ToolExecutionError(f"{name} failed unexpectedly", retryable=False, code="INTERNAL_ERROR") from e

        return await execute_with_retry(lambda: tool.handler(params), name, self.retry_config)
