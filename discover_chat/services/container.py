"""Explicit wiring of the services one application instance uses."""

import asyncio
from dataclasses import dataclass, field

from discover_chat.services.cache import TTLCache
from discover_chat.services.conversation_store import ConversationStore, InMemoryConversationStore
from discover_chat.services.llm import AnthropicModelClient, ModelInvocationClient
from discover_chat.services.music import MusicServices
from discover_chat.services.orchestrator import OrchestratorConfig, StreamOrchestrator
from discover_chat.services.tracing import LoggingTracer, Tracer
from discover_chat.tools.registry import ToolsRegistry
from discover_chat.tools.retry import RetryConfig
from discover_chat.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    """Store, model client, tools, tracer and cache, built once at startup."""

    store: ConversationStore
    model_client: ModelInvocationClient
    tools: ToolsRegistry
    tracer: Tracer
    cache: TTLCache
    orchestrator_config: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    orchestrator: StreamOrchestrator = field(init=False)
    background_tasks: set[asyncio.Task] = field(default_factory=set, init=False)

    def __post_init__(self) -> None:
        self.orchestrator = StreamOrchestrator(
            store=self.store,
            model_client=self.model_client,
            tools=self.tools,
            tracer=self.tracer,
            config=self.orchestrator_config,
        )

    @classmethod
    def build(
        cls,
        model_client: ModelInvocationClient | None = None,
        orchestrator_config: OrchestratorConfig | None = None,
        retry_config: RetryConfig | None = None,
    ) -> "ServiceContainer":
        """Build a container backed by the in-process collaborators.

        The Anthropic model client is created from the environment unless one
        is passed in.
        """
        cache = TTLCache()
        services = MusicServices.in_memory(cache)
        return cls(
            store=InMemoryConversationStore(),
            model_client=model_client or AnthropicModelClient(),
            tools=ToolsRegistry(services, retry_config),
            tracer=LoggingTracer(),
            cache=cache,
            orchestrator_config=orchestrator_config or OrchestratorConfig(),
        )

    def track(self, task: asyncio.Task) -> None:
        """Keep a reference to a generation task until it finishes."""
        self.background_tasks.add(task)
        task.add_done_callback(self.background_tasks.discard)

    async def shutdown(self) -> None:
        if self.background_tasks:
            logger.info(f"Waiting for {len(self.background_tasks)} generation task(s) to finish")
            await asyncio.gather(*self.background_tasks, return_exceptions=True)
        self.cache.clear()
