"""Anthropic API client with rate limiting and token budgeting."""

import asyncio
import os
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Literal

import tiktoken
from anthropic import AsyncAnthropic
from anthropic.lib.streaming import AsyncMessageStream
from anthropic.types import ContentBlock as AnthropicContentBlock
from anthropic.types import Usage
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from pydantic import BaseModel

from discover_chat.models.llm import LLMContentBlock, LLMUsage, TextBlock, ToolResultBlock, ToolUseBlock
from discover_chat.utils.logging import get_logger

logger = get_logger(__name__)


class CacheControl(BaseModel):
    """Cache control configuration for prompt caching."""

    type: Literal["ephemeral"] = "ephemeral"
    ttl: Literal["5m", "1h"] = "5m"


class AnthropicMessage(BaseModel):
    """Message format for Anthropic API."""

    role: Literal["user", "assistant"]
    content: str | list[LLMContentBlock]


class AnthropicTool(BaseModel):
    """Tool definition for Anthropic API."""

    name: str
    description: str
    input_schema: dict[str, Any]
    cache_control: CacheControl | None = None


@dataclass
class AnthropicConfig:
    """Configuration for Anthropic API client."""

    model: str = field(default_factory=lambda: os.getenv("CHAT_MODEL", "claude-haiku-4-5-20251001"))
    max_tokens: int = field(default_factory=lambda: int(os.getenv("CHAT_MAX_TOKENS", "4096")))
    temperature: float = 0.7
    max_retries: int = 2

    # Token limits for validation and truncation
    max_message_tokens: int = 4000  # Maximum tokens per individual message
    max_conversation_tokens: int = 200000
    token_headroom: int = 4096  # Reserve tokens for response

    requests_per_minute: int = 50
    tokens_per_minute: int = 40_000


class AnthropicRateLimiter:
    """Moving-window rate limiter for requests and tokens."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 40_000):
        """Initialize rate limiter.

        Args:
            requests_per_minute: Maximum requests per minute
            tokens_per_minute: Maximum tokens per minute
        """
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def check_rate_limit(self, estimated_tokens: int, identifier: str = "anthropic") -> None:
        """Wait until the request fits within the request and token limits."""
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")

        if not self.limiter.hit(self.request_limit, identifier):
            await self._wait_for_window(self.request_limit, identifier, "Request")

        token_identifier = f"{identifier}_tokens"
        if not self.limiter.hit(self.token_limit, token_identifier, cost=estimated_tokens):
            await self._wait_for_window(self.token_limit, token_identifier, "Token")

    async def _wait_for_window(self, limit, identifier: str, label: str) -> None:
        window_stats = self.limiter.get_window_stats(limit, identifier)
        wait_time = max(0.0, window_stats.reset_time - time.time())
        if wait_time > 0:
            logger.warning(f"{label} rate limit exceeded, waiting {wait_time:.2f}s")
            await asyncio.sleep(wait_time)


class AnthropicClient:
    """Low-level Anthropic API client with rate limiting and token budgeting."""

    tokenizer: tiktoken.Encoding | None = None
    client: AsyncAnthropic
    config: AnthropicConfig
    rate_limiter: AnthropicRateLimiter

    def __init__(self, api_key: str | None = None, config: AnthropicConfig | None = None):
        """Initialize Anthropic client.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY env var)
            config: Client configuration
        """
        anthropic_api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable is required")

        self.config = config or AnthropicConfig()
        self.client = AsyncAnthropic(api_key=anthropic_api_key, max_retries=self.config.max_retries)
        self.rate_limiter = AnthropicRateLimiter(self.config.requests_per_minute, self.config.tokens_per_minute)

        try:
            # Close approximation for Claude
            self.tokenizer = tiktoken.encoding_for_model("gpt-4")
        except (KeyError, ValueError, OSError) as e:
            logger.warning(f"Tokenizer unavailable, falling back to character estimate: {e}")
            self.tokenizer = None

    @asynccontextmanager
    async def stream_message(
        self,
        messages: list[AnthropicMessage],
        system_prompt: str,
        tools: list[AnthropicTool] | None = None,
        **kwargs,
    ) -> AsyncIterator[AsyncMessageStream]:
        """Open a streaming Messages API call.

        Args:
            messages: Conversation history
            system_prompt: System prompt for Claude
            tools: Available tools for Claude
            **kwargs: Overrides for model, max_tokens or temperature

        Yields:
            The SDK message stream; iterate it for events and call
            ``get_final_message()`` once it is exhausted
        """
        truncated_messages = self.truncate_conversation(messages, system_prompt, tools)

        estimated_tokens = self._estimate_tokens(truncated_messages, system_prompt)
        logger.debug(f"Estimated tokens: {estimated_tokens}")
        await self.rate_limiter.check_rate_limit(estimated_tokens)

        request_params: dict[str, Any] = {
            "model": kwargs.get("model", self.config.model),
            "max_tokens": kwargs.get("max_tokens", self.config.max_tokens),
            "temperature": kwargs.get("temperature", self.config.temperature),
            "system": system_prompt,
            "messages": [msg.model_dump(exclude_none=True) for msg in truncated_messages],
        }
        if tools:
            request_params["tools"] = [tool.model_dump(exclude_none=True) for tool in tools]

        logger.debug(
            f"Streaming {request_params['model']} with {len(truncated_messages)} messages, "
            f"{len(tools) if tools else 0} tools"
        )
        async with self.client.messages.stream(**request_params) as stream:
            yield stream

    def convert_content_blocks(self, anthropic_content: list[AnthropicContentBlock]) -> list[LLMContentBlock]:
        """Convert Anthropic content blocks to our content block types."""
        converted_blocks: list[LLMContentBlock] = []
        for block in anthropic_content:
            if block.type == "text":
                converted_blocks.append(TextBlock(text=block.text))
            elif block.type == "tool_use":
                converted_blocks.append(ToolUseBlock(id=block.id, name=block.name, input=dict(block.input)))
            else:
                logger.warning(f"Dropping unsupported content block type: {block.type}")
        return converted_blocks

    @staticmethod
    def convert_usage(usage: Usage | None) -> LLMUsage:
        if usage is None:
            return LLMUsage()
        return LLMUsage(
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            cache_creation_input_tokens=usage.cache_creation_input_tokens or 0,
            cache_read_input_tokens=usage.cache_read_input_tokens or 0,
        )

    def _message_text(self, message: AnthropicMessage) -> str:
        if isinstance(message.content, str):
            return message.content
        parts = []
        for block in message.content:
            if isinstance(block, TextBlock):
                parts.append(block.text)
            elif isinstance(block, ToolUseBlock):
                parts.append(f"{block.name}{block.input}")
            else:
                parts.append(block.content)
        return "".join(parts)

    @staticmethod
    def _starts_turn(message: AnthropicMessage) -> bool:
        """A user message that does not answer an earlier tool call."""
        if message.role != "user":
            return False
        return isinstance(message.content, str) or not any(
            isinstance(block, ToolResultBlock) for block in message.content
        )

    def _estimate_tokens(self, messages: list[AnthropicMessage], system_prompt: str) -> int:
        """Estimate token count for rate limiting."""
        text_content = system_prompt + "".join(self._message_text(message) for message in messages)
        return self.estimate_message_tokens(text_content)

    def estimate_message_tokens(self, message: str) -> int:
        """Estimate token count for a single message.

        Args:
            message: Message content

        Returns:
            Estimated token count
        """
        if self.tokenizer is None:
            # Roughly 4 characters per token
            return len(message) // 4
        return len(self.tokenizer.encode(message, disallowed_special=()))

    def validate_message_tokens(self, message: str) -> None:
        """Validate that a message doesn't exceed token limits.

        Args:
            message: Message content

        Raises:
            ValueError: If message exceeds token limit
        """
        token_count = self.estimate_message_tokens(message)
        if token_count > self.config.max_message_tokens:
            raise ValueError(
                f"Message exceeds token limit: {token_count} tokens > {self.config.max_message_tokens} limit"
            )

    def truncate_conversation(
        self, messages: list[AnthropicMessage], system_prompt: str, tools: list[AnthropicTool] | None = None
    ) -> list[AnthropicMessage]:
        """Truncate conversation from the beginning to fit within token limits.

        The result always starts with a plain user turn.

        Args:
            messages: Conversation messages
            system_prompt: System prompt
            tools: Available tools

        Returns:
            Truncated message list that fits within limits
        """
        if not messages:
            return messages

        available_tokens = self.config.max_conversation_tokens - self.config.token_headroom
        available_tokens -= self.estimate_message_tokens(system_prompt)
        if tools:
            tool_content = "".join(tool.name + tool.description + str(tool.input_schema) for tool in tools)
            available_tokens -= self.estimate_message_tokens(tool_content)

        truncated_messages: list[AnthropicMessage] = []
        current_tokens = 0

        for message in reversed(messages):
            message_tokens = self.estimate_message_tokens(self._message_text(message))
            if current_tokens + message_tokens > available_tokens:
                break
            truncated_messages.insert(0, message)
            current_tokens += message_tokens

        while truncated_messages and not self._starts_turn(truncated_messages[0]):
            truncated_messages.pop(0)

        if len(truncated_messages) < len(messages):
            logger.warning(
                f"Truncated conversation from {len(messages)} to {len(truncated_messages)} messages "
                f"to fit within {available_tokens} token limit"
            )

        return truncated_messages
