"""Stream orchestrator: one user message in, one ordered protocol event stream out.

A call runs a bounded loop of model steps interleaved with tool executions,
relays it as protocol events, and ends in exactly one of three outcomes:

- completion: content is reconciled and persisted, then ``message_end``
- cancellation: partial content is persisted, no ``error`` event, zero usage
- failure: partial content is persisted best-effort, then one ``error`` event
"""

import os
from collections.abc import Callable
from dataclasses import dataclass, field

from cuid2 import cuid_wrapper

from discover_chat.models.conversation import ContentBlock, Message
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
from discover_chat.models.llm import (
    Finish,
    LLMMessage,
    ModelEvent,
    ModelFailure,
    ModelRequest,
    StepFinish,
    TextDelta,
    ToolCallRequest,
)
from discover_chat.models.streaming import GenerationAccumulator
from discover_chat.prompts import get_system_prompt
from discover_chat.services.conversation_store import ConversationStore
from discover_chat.services.llm import ModelInvocationClient, ModelStream, tool_result_content
from discover_chat.services.reconciliation import reconcile
from discover_chat.services.tracing import Span, Trace, Tracer
from discover_chat.tools.registry import ToolsRegistry
from discover_chat.utils.cancellation import CancellationToken
from discover_chat.utils.errors import ConversationBusyError, NotFoundError, StreamCancelled, ValidationError
from discover_chat.utils.errors import classify_model_error
from discover_chat.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()

EventSink = Callable[[ProtocolEvent], None]


@dataclass
class OrchestratorConfig:
    """Configuration for the stream orchestrator."""

    max_steps: int = field(default_factory=lambda: int(os.getenv("CHAT_MAX_STEPS", "20")))
    max_history_messages: int = 20
    max_message_chars: int = 10_000
    max_output_tokens: int = field(default_factory=lambda: int(os.getenv("CHAT_MAX_TOKENS", "4096")))
    system_prompt: str = field(default_factory=get_system_prompt)


@dataclass
class StreamSession:
    """A validated request whose user message has been persisted."""

    conversation_id: str
    message_id: str
    history: list[LLMMessage]


@dataclass
class StreamResult:
    conversation_id: str
    assistant_message_id: str | None
    input_tokens: int = 0
    output_tokens: int = 0


def build_history(messages: list[Message], new_message: str, limit: int) -> list[LLMMessage]:
    """Text-only model history ending with the new user message, capped to the last ``limit`` messages."""
    history = [LLMMessage(role=msg.role, content=text) for msg in messages if (text := msg.text())]
    history.append(LLMMessage(role="user", content=new_message))
    return history[-limit:]


async def _next_event(events) -> ModelEvent | None:
    try:
        return await anext(events)
    except StopAsyncIteration:
        return None


class StreamOrchestrator:
    """Drives one generation per call; holds no state across calls except the conversation lock set."""

    def __init__(
        self,
        store: ConversationStore,
        model_client: ModelInvocationClient,
        tools: ToolsRegistry,
        tracer: Tracer,
        config: OrchestratorConfig | None = None,
    ):
        self.store = store
        self.model_client = model_client
        self.tools = tools
        self.tracer = tracer
        self.config = config or OrchestratorConfig()
        self._active_conversations: set[str] = set()

    async def start(
        self,
        message: str,
        conversation_id: str | None,
        emit: EventSink,
        token: CancellationToken | None = None,
    ) -> StreamResult | None:
        """Validate, persist the user message, then stream the response."""
        session = await self.prepare(message, conversation_id)
        return await self.run(session, emit, token)

    async def prepare(self, message: str, conversation_id: str | None) -> StreamSession:
        """Validate the request and persist the user message.

        Raises before any state is created when the message is empty or too
        long, when the conversation does not exist, or when it is already
        streaming.

        Args:
            message: The user's message
            conversation_id: Existing conversation, or None to start one

        Returns:
            Session to pass to ``run``; the conversation stays locked until ``run`` returns
        """
        if not message or not message.strip():
            raise ValidationError("Message cannot be empty.")
        if len(message) > self.config.max_message_chars:
            raise ValidationError(f"Message is too long (maximum {self.config.max_message_chars} characters).")
        try:
            self.model_client.validate_message(message)
        except ValueError as e:
            logger.info(f"Rejected message over the model token limit: {e}")
            raise ValidationError("Message is too long for the assistant to process.") from e

        if conversation_id is None:
            created = await self.store.create_conversation_with_message(message)
            conversation_id = created.conversation.id
            self._acquire(conversation_id)
            history = build_history([], message, self.config.max_history_messages)
        else:
            if not await self.store.conversation_exists(conversation_id):
                raise NotFoundError(f"Conversation {conversation_id} not found")
            self._acquire(conversation_id)
            try:
                existing = await self.store.get_messages(conversation_id)
                await self.store.add_user_message(conversation_id, message)
            except BaseException:
                self.release(conversation_id)
                raise
            history = build_history(existing, message, self.config.max_history_messages)

        logger.info(f"Prepared stream for conversation {conversation_id} ({len(history)} history messages)")
        return StreamSession(conversation_id=conversation_id, message_id=cuid(), history=history)

    def release(self, conversation_id: str) -> None:
        self._active_conversations.discard(conversation_id)

    def _acquire(self, conversation_id: str) -> None:
        if conversation_id in self._active_conversations:
            raise ConversationBusyError(f"Conversation {conversation_id} is already streaming")
        self._active_conversations.add(conversation_id)

    async def run(
        self, session: StreamSession, emit: EventSink, token: CancellationToken | None = None
    ) -> StreamResult | None:
        """Stream the assistant response for a prepared session.

        Args:
            session: Result of ``prepare``
            emit: Receives protocol events in order
            token: Cancels the generation when fired

        Returns:
            The result on completion or cancellation, None on failure
        """
        token = token or CancellationToken()
        accumulator = GenerationAccumulator()
        trace = self.tracer.start_trace(
            "chat-message",
            session_id=session.conversation_id,
            metadata={"messageCount": len(session.history)},
        )
        span = trace.create_span("generation", {"messageCount": len(session.history), "maxSteps": self.config.max_steps})
        stream: ModelStream | None = None
        persisted: Message | None = None

        try:
            emit(MessageStartEvent(message_id=session.message_id, conversation_id=session.conversation_id))
            token.raise_if_cancelled()

            stream = self.model_client.invoke(
                ModelRequest(
                    system_prompt=self.config.system_prompt,
                    messages=session.history,
                    tools=self.tools.get_llm_tools(),
                    max_output_tokens=self.config.max_output_tokens,
                    step_limit=self.config.max_steps,
                    cancellation_token=token,
                )
            )
            steps = await self._drive(stream, accumulator, emit, token, trace)
            usage = await token.guard(stream.usage())
            finish_reason = await token.guard(stream.finish_reason())

            persisted = await self._persist(session, accumulator)
            emit(
                MessageEndEvent(
                    usage=TokenUsage(input_tokens=usage.input_tokens, output_tokens=usage.output_tokens)
                )
            )
            span.end(
                {
                    "finishReason": finish_reason,
                    "steps": steps,
                    "inputTokens": usage.input_tokens,
                    "outputTokens": usage.output_tokens,
                }
            )
            logger.info(
                f"Stream completed for {session.conversation_id}: {steps} steps, "
                f"{usage.input_tokens} in / {usage.output_tokens} out tokens, finish reason {finish_reason}"
            )
            await self._flush(token)
            return StreamResult(
                conversation_id=session.conversation_id,
                assistant_message_id=persisted.id,
                input_tokens=usage.input_tokens,
                output_tokens=usage.output_tokens,
            )

        except StreamCancelled:
            return await self._finish_cancelled(session, accumulator, persisted, span)

        except Exception as e:
            await self._finish_failed(session, accumulator, persisted, span, emit, e)
            return None

        finally:
            if not span.closed:
                # Task cancellation bypasses the completion paths above
                span.end_error({"error": "interrupted", "textLength": len(accumulator.text)})
            if stream is not None:
                await stream.aclose()
            self.release(session.conversation_id)

    async def _drive(
        self,
        stream: ModelStream,
        accumulator: GenerationAccumulator,
        emit: EventSink,
        token: CancellationToken,
        trace: Trace,
    ) -> int:
        """Consume model events until the stream ends or the step cap is hit. Returns the step count."""
        events = aiter(stream)
        steps = 0
        while True:
            event = await token.guard(_next_event(events))
            if event is None:
                return steps

            if isinstance(event, TextDelta):
                if event.text:
                    accumulator.append_text(event.text)
                    emit(TextDeltaEvent(content=event.text))

            elif isinstance(event, ToolCallRequest):
                await self._dispatch_tool(event, stream, accumulator, emit, token, trace)

            elif isinstance(event, StepFinish):
                steps += 1
                logger.debug(f"Step {steps} finished ({event.finish_reason})")
                if steps >= self.config.max_steps:
                    logger.warning(f"Step cap of {self.config.max_steps} reached, ending generation")
                    await stream.aclose()
                    return steps

            elif isinstance(event, Finish):
                logger.debug(f"Model finished ({event.finish_reason})")
                return steps

            elif isinstance(event, ModelFailure):
                raise event.error

    async def _dispatch_tool(
        self,
        call: ToolCallRequest,
        stream: ModelStream,
        accumulator: GenerationAccumulator,
        emit: EventSink,
        token: CancellationToken,
        trace: Trace,
    ) -> None:
        invocation = accumulator.start_tool(call.id, call.name, call.input)
        emit(ToolCallStartEvent(tool_call_id=call.id, tool_name=call.name, input=call.input))
        logger.debug(f"Dispatching tool {call.name} ({call.id})")

        result = await token.guard(self.tools.execute(call.id, call.name, call.input, trace))

        if result.ok:
            output = result.output_dict()
            invocation.complete(output, result.output.summary, result.output.result_count, result.duration_ms)
            emit(
                ToolCallEndEvent(
                    tool_call_id=call.id,
                    summary=invocation.summary,
                    result_count=invocation.result_count,
                    duration_ms=result.duration_ms,
                    was_retried=result.was_retried,
                    output=output,
                )
            )
            stream.submit_tool_result(call.id, tool_result_content(output))
            return

        error = result.error
        invocation.fail(error.message, error.retryable, error.was_retried, result.duration_ms)
        emit(
            ToolCallErrorEvent(
                tool_call_id=call.id, error=error.message, retryable=error.retryable, was_retried=error.was_retried
            )
        )
        stream.submit_tool_result(
            call.id, tool_result_content({"error": error.message, "retryable": error.retryable}), is_error=True
        )

    async def _persist(self, session: StreamSession, accumulator: GenerationAccumulator) -> Message:
        blocks = reconcile(accumulator.freeze()) or [ContentBlock.text_block("")]
        return await self.store.add_assistant_message(session.conversation_id, blocks, message_id=session.message_id)

    async def _finish_cancelled(
        self, session: StreamSession, accumulator: GenerationAccumulator, persisted: Message | None, span: Span
    ) -> StreamResult:
        logger.warning(f"Stream for {session.conversation_id} cancelled by the client")
        span.end({"cancelled": True, "partialParts": len(accumulator.parts)})

        if persisted is None and not accumulator.is_empty:
            try:
                persisted = await self._persist(session, accumulator)
                logger.info(f"Saved partial response {persisted.id} for {session.conversation_id}")
            except Exception as e:
                logger.error(f"Failed to save partial response for {session.conversation_id}: {e}", exc_info=True)

        await self._flush(None)
        return StreamResult(
            conversation_id=session.conversation_id,
            assistant_message_id=persisted.id if persisted else None,
        )

    async def _finish_failed(
        self,
        session: StreamSession,
        accumulator: GenerationAccumulator,
        persisted: Message | None,
        span: Span,
        emit: EventSink,
        error: Exception,
    ) -> None:
        classified = classify_model_error(error)
        logger.error(f"Stream for {session.conversation_id} failed ({classified.code}): {error}", exc_info=error)
        span.end_error({"code": classified.code, "error": str(error)})

        if persisted is None and not accumulator.is_empty:
            try:
                await self._persist(session, accumulator)
            except Exception as save_error:
                logger.error(f"Failed to save partial response for {session.conversation_id}: {save_error}")

        emit(ErrorEvent(code=classified.code, message=classified.user_message, retryable=classified.retryable))
        await self._flush(None)

    async def _flush(self, token: CancellationToken | None) -> None:
        """Flush traces; the outcome is already decided, so a failure here is only logged."""
        try:
            if token is None:
                await self.tracer.flush()
            else:
                await token.guard(self.tracer.flush())
        except StreamCancelled:
            logger.debug("Trace flush interrupted by cancellation")
        except Exception as e:
            logger.warning(f"Trace flush failed: {e}")
