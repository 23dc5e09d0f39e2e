"""Shared fixtures: in-memory services and a scripted model client."""

import asyncio
from collections.abc import AsyncGenerator, Iterable

import pytest

from discover_chat.models.llm import Finish, LLMUsage, ModelEvent, ModelRequest, StepFinish
from discover_chat.services.cache import TTLCache
from discover_chat.services.conversation_store import InMemoryConversationStore
from discover_chat.services.music import MusicServices
from discover_chat.services.orchestrator import OrchestratorConfig, StreamOrchestrator
from discover_chat.services.tracing import LoggingTracer
from discover_chat.tools.registry import ToolsRegistry
from discover_chat.tools.retry import RetryConfig


class Hang:
    """Script item that blocks the model stream until it is closed."""


class ScriptedModelStream:
    """Model stream that replays a fixed sequence of events."""

    def __init__(self, script: Iterable[ModelEvent | Hang | Exception], request: ModelRequest):
        self.script = script
        self.request = request
        self.tool_results: dict[str, tuple[str, bool]] = {}
        self.closed = False
        self._usage = LLMUsage()
        self._finish_reason: str | None = None
        self._ended = asyncio.Event()
        self._events = self._generate()

    def __aiter__(self):
        return self._events

    async def _generate(self) -> AsyncGenerator[ModelEvent, None]:
        try:
            for item in self.script:
                if isinstance(item, Hang):
                    await asyncio.Event().wait()
                if isinstance(item, Exception):
                    raise item
                if isinstance(item, StepFinish):
                    self._usage.add(item.usage)
                if isinstance(item, Finish):
                    self._finish_reason = item.finish_reason
                    self._ended.set()
                yield item
        finally:
            self._ended.set()

    def submit_tool_result(self, tool_call_id: str, content: str, is_error: bool = False) -> None:
        self.tool_results[tool_call_id] = (content, is_error)

    async def finish_reason(self) -> str | None:
        await self._ended.wait()
        return self._finish_reason

    async def usage(self) -> LLMUsage:
        await self._ended.wait()
        return self._usage

    async def aclose(self) -> None:
        self.closed = True
        await self._events.aclose()
        self._ended.set()


class ScriptedModelClient:
    """Model client returning one scripted stream per invocation."""

    def __init__(self, *scripts: Iterable[ModelEvent | Hang | Exception]):
        self.scripts = list(scripts)
        self.requests: list[ModelRequest] = []
        self.streams: list[ScriptedModelStream] = []
        self.token_limit: int | None = None

    def invoke(self, request: ModelRequest) -> ScriptedModelStream:
        self.requests.append(request)
        stream = ScriptedModelStream(self.scripts.pop(0), request)
        self.streams.append(stream)
        return stream

    def validate_message(self, text: str) -> None:
        if self.token_limit is not None and len(text) // 4 > self.token_limit:
            raise ValueError(f"Message exceeds token limit: {len(text) // 4} tokens > {self.token_limit} limit")


def usage(input_tokens: int, output_tokens: int) -> LLMUsage:
    return LLMUsage(input_tokens=input_tokens, output_tokens=output_tokens)


@pytest.fixture
def cache():
    return TTLCache()


@pytest.fixture
def services(cache):
    return MusicServices.in_memory(cache)


@pytest.fixture
def registry(services):
    return ToolsRegistry(services, RetryConfig(delay_seconds=0))


@pytest.fixture
def store():
    return InMemoryConversationStore()


@pytest.fixture
def tracer():
    return LoggingTracer()


@pytest.fixture
def make_orchestrator(store, registry, tracer):
    """Build an orchestrator around a scripted model client."""

    def factory(*scripts, **config) -> tuple[StreamOrchestrator, ScriptedModelClient]:
        client = ScriptedModelClient(*scripts)
        orchestrator = StreamOrchestrator(
            store=store,
            model_client=client,
            tools=registry,
            tracer=tracer,
            config=OrchestratorConfig(system_prompt="test prompt", **config),
        )
        return orchestrator, client

    return factory
