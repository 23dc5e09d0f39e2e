"""Model invocation: multi-step generation exposed as one ordered event stream."""

import asyncio
import json
from collections.abc import AsyncGenerator, AsyncIterator
from typing import Protocol

import httpx
from anthropic import APIError

from discover_chat.clients.anthropic import AnthropicClient, AnthropicMessage, AnthropicTool, CacheControl
from discover_chat.models.llm import (
    Finish,
    LLMUsage,
    ModelEvent,
    ModelFailure,
    ModelRequest,
    StepFinish,
    TextDelta,
    ToolCallRequest,
    ToolResultBlock,
    ToolUseBlock,
)
from discover_chat.utils.logging import get_logger

logger = get_logger(__name__)

MISSING_RESULT = "Error: the tool call was not executed"


class ModelStream(Protocol):
    """Ordered events of one generation.

    When a step stops for tool use, the next step starts only after the
    consumer has had the chance to ``submit_tool_result`` for that step's
    calls.
    """

    def __aiter__(self) -> AsyncIterator[ModelEvent]:
        ...

    def submit_tool_result(self, tool_call_id: str, content: str, is_error: bool = False) -> None:
        ...

    async def finish_reason(self) -> str | None:
        """Resolves once the stream has ended."""
        ...

    async def usage(self) -> LLMUsage:
        """Token usage summed over all steps; resolves once the stream has ended."""
        ...

    async def aclose(self) -> None:
        ...


class ModelInvocationClient(Protocol):
    """Interface for model providers."""

    def invoke(self, request: ModelRequest) -> ModelStream:
        ...

    def validate_message(self, text: str) -> None:
        """Raise ValueError when a user message exceeds the provider's per-message limit."""
        ...


class AnthropicModelStream:
    """Anthropic streaming Messages API driven through tool-use steps."""

    def __init__(self, client: AnthropicClient, request: ModelRequest):
        self._client = client
        self._request = request
        self._messages = [AnthropicMessage(role=msg.role, content=msg.content) for msg in request.messages]
        self._tools = self._build_tools()
        self._results: dict[str, ToolResultBlock] = {}
        self._usage = LLMUsage()
        self._finish_reason: str | None = None
        self._ended = asyncio.Event()
        self._events = self._generate()

    def __aiter__(self) -> AsyncIterator[ModelEvent]:
        return self._events

    def submit_tool_result(self, tool_call_id: str, content: str, is_error: bool = False) -> None:
        self._results[tool_call_id] = ToolResultBlock(tool_use_id=tool_call_id, content=content, is_error=is_error)

    async def finish_reason(self) -> str | None:
        await self._ended.wait()
        return self._finish_reason

    async def usage(self) -> LLMUsage:
        await self._ended.wait()
        return self._usage

    async def aclose(self) -> None:
        await self._events.aclose()
        self._ended.set()

    def _build_tools(self) -> list[AnthropicTool]:
        tools = []
        for i, tool in enumerate(self._request.tools):
            # Cache control on the last tool caches all tool definitions
            cache_control = CacheControl() if i == len(self._request.tools) - 1 else None
            tools.append(
                AnthropicTool(
                    name=tool.name,
                    description=tool.description,
                    input_schema=tool.input_schema,
                    cache_control=cache_control,
                )
            )
        return tools

    def _cancelled(self) -> bool:
        token = self._request.cancellation_token
        return token is not None and token.cancelled

    async def _generate(self) -> AsyncGenerator[ModelEvent, None]:
        step = 0
        try:
            while True:
                step += 1
                calls: list[ToolUseBlock] = []
                logger.debug(f"Model step {step}/{self._request.step_limit}")

                async with self._client.stream_message(
                    self._messages,
                    self._request.system_prompt,
                    self._tools,
                    max_tokens=self._request.max_output_tokens,
                ) as stream:
                    async for event in stream:
                        if self._cancelled():
                            self._finish_reason = "cancelled"
                            return
                        if event.type == "text":
                            yield TextDelta(text=event.text)
                        elif event.type == "content_block_stop" and event.content_block.type == "tool_use":
                            block = event.content_block
                            call = ToolUseBlock(id=block.id, name=block.name, input=dict(block.input))
                            calls.append(call)
                            yield ToolCallRequest(id=call.id, name=call.name, input=call.input)
                    final = await stream.get_final_message()

                step_usage = self._client.convert_usage(final.usage)
                self._usage.add(step_usage)
                yield StepFinish(step=step, finish_reason=final.stop_reason, usage=step_usage)

                if final.stop_reason != "tool_use" or not calls:
                    self._finish_reason = final.stop_reason
                    break
                if step >= self._request.step_limit:
                    logger.warning(f"Model reached the step limit ({self._request.step_limit})")
                    self._finish_reason = "step_limit"
                    break

                self._messages.append(
                    AnthropicMessage(role="assistant", content=self._client.convert_content_blocks(final.content))
                )
                self._messages.append(AnthropicMessage(role="user", content=[self._result_for(c) for c in calls]))

            # The consumer stops iterating at the terminal event, so resolve the awaitables first
            self._ended.set()
            yield Finish(finish_reason=self._finish_reason, usage=self._usage)
        except (APIError, httpx.HTTPError, TimeoutError) as e:
            logger.error(f"Model stream failed at step {step}: {e}")
            self._finish_reason = "error"
            self._ended.set()
            yield ModelFailure(error=e)
        finally:
            self._ended.set()

    def _result_for(self, call: ToolUseBlock) -> ToolResultBlock:
        result = self._results.pop(call.id, None)
        if result is None:
            logger.warning(f"No result submitted for tool call {call.id} ({call.name})")
            return ToolResultBlock(tool_use_id=call.id, content=MISSING_RESULT, is_error=True)
        return result


class AnthropicModelClient:
    """Model invocation client backed by Anthropic."""

    def __init__(self, client: AnthropicClient | None = None):
        """Initialize model client.

        Args:
            client: Low-level Anthropic client (built from the environment when omitted)
        """
        self.client = client or AnthropicClient()

    def invoke(self, request: ModelRequest) -> AnthropicModelStream:
        logger.info(
            f"Invoking model with {len(request.messages)} messages, {len(request.tools)} tools, "
            f"step limit {request.step_limit}"
        )
        return AnthropicModelStream(self.client, request)

    def validate_message(self, text: str) -> None:
        self.client.validate_message_tokens(text)


def tool_result_content(payload: dict) -> str:
    """Serialize a tool output or error mapping for the model."""
    return json.dumps(payload, ensure_ascii=False, default=str)
