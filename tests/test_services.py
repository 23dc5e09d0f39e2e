"""Tests for the conversation store, cache, tracer and cancellation token."""

import asyncio

import pytest

from discover_chat.models.conversation import ContentBlock
from discover_chat.services.cache import TTLCache
from discover_chat.services.conversation_store import InMemoryConversationStore
from discover_chat.services.tracing import LoggingTracer, SpanStatus, sanitize_input
from discover_chat.utils.cancellation import CancellationToken
from discover_chat.utils.errors import NotFoundError, StreamCancelled


class TestInMemoryConversationStore:
    """Tests for InMemoryConversationStore."""

    @pytest.mark.asyncio
    async def test_create_with_first_message(self, store):
        created = await store.create_conversation_with_message("find something melancholic")

        assert await store.conversation_exists(created.conversation.id)
        assert [m.role for m in created.messages] == ["user"]
        assert created.messages[0].text() == "find something melancholic"

    @pytest.mark.asyncio
    async def test_messages_in_creation_order(self, store):
        created = await store.create_conversation_with_message("hi")
        conversation_id = created.conversation.id

        await store.add_assistant_message(conversation_id, [ContentBlock.text_block("hello")], message_id="msg_fixed")
        await store.add_user_message(conversation_id, "more")

        messages = await store.get_messages(conversation_id)
        assert [m.role for m in messages] == ["user", "assistant", "user"]
        assert messages[1].id == "msg_fixed"
        assert messages[1].conversation_id == conversation_id

    @pytest.mark.asyncio
    async def test_stored_blocks_are_copies(self, store):
        created = await store.create_conversation_with_message("hi")
        block = ContentBlock.tool_use("toolu_1", "semanticSearch", {"query": "x"})

        await store.add_assistant_message(created.conversation.id, [block])
        block.tool_input["query"] = "changed"

        messages = await store.get_messages(created.conversation.id)
        assert messages[1].content[0].tool_input == {"query": "x"}

    @pytest.mark.asyncio
    async def test_updated_at_moves_forward(self, store):
        created = await store.create_conversation_with_message("hi")
        before = created.conversation.updated_at

        await store.add_user_message(created.conversation.id, "again")

        conversation = await store.get_conversation(created.conversation.id)
        assert conversation.updated_at >= before

    @pytest.mark.asyncio
    async def test_unknown_conversation(self):
        store = InMemoryConversationStore()

        assert await store.conversation_exists("missing") is False
        assert await store.get_conversation("missing") is None
        with pytest.raises(NotFoundError):
            await store.add_user_message("missing", "hi")


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestTTLCache:
    """Tests for TTLCache."""

    def test_set_and_get(self):
        cache = TTLCache()
        cache.set("tidal:search:lanterns", {"tracks": 3})

        assert cache.get("tidal:search:lanterns") == {"tracks": 3}
        assert cache.has("tidal:search:lanterns")

    def test_entry_expires(self):
        clock = FakeClock()
        cache = TTLCache(default_ttl_seconds=10, clock=clock)
        cache.set("k", "v")

        clock.now = 9.9
        assert cache.get("k") == "v"
        clock.now = 10.0
        assert cache.get("k") is None

    def test_per_entry_ttl(self):
        clock = FakeClock()
        cache = TTLCache(default_ttl_seconds=100, clock=clock)
        cache.set("short", 1, ttl_seconds=1)
        cache.set("long", 2)

        clock.now = 5
        assert cache.stats() == {"size": 1, "keys": ["long"]}

    def test_set_drops_expired_entries(self):
        clock = FakeClock()
        cache = TTLCache(clock=clock)

        for i in range(1000):
            cache.set(f"tidal:search:query {i}", i, ttl_seconds=1)
            clock.now += 2

        assert len(cache._entries) == 1
        assert cache.get("tidal:search:query 999") is None

    def test_delete_and_clear(self):
        cache = TTLCache()
        cache.set("a", 1)
        cache.set("b", 2)

        cache.delete("a")
        cache.delete("never-set")
        assert not cache.has("a")

        cache.clear()
        assert cache.stats()["size"] == 0


class TestLoggingTracer:
    """Tests for spans and flushing."""

    def test_span_closes_once(self, caplog):
        trace = LoggingTracer().start_trace("chat-message", session_id="conv_1")
        span = trace.create_span("tool", {"toolName": "semanticSearch"})

        span.end({"resultCount": 3})
        span.end_error({"error": "late"})

        assert span.status is SpanStatus.OK
        assert span.output == {"resultCount": 3}
        assert span.duration_ms is not None
        assert "already closed" in caplog.text

    @pytest.mark.asyncio
    async def test_flush_drops_closed_spans(self):
        tracer = LoggingTracer()
        trace = tracer.start_trace("chat-message")
        done = trace.create_span("tool")
        still_open = trace.create_span("generation")
        done.end_error({"error": "Service down"})

        await tracer.flush()

        assert tracer.spans == [still_open]
        assert list(tracer.recent) == [done]

    def test_spans_share_trace_id(self):
        trace = LoggingTracer().start_trace("chat-message")
        first = trace.create_span("generation")
        second = trace.create_span("tool")

        assert first.trace_id == second.trace_id == trace.trace_id
        assert first.span_id != second.span_id

    def test_sanitize_truncates_long_query(self):
        sanitized = sanitize_input({"query": "x" * 600, "limit": 5})

        assert sanitized["query"] == "x" * 500 + "...[truncated]"
        assert sanitized["limit"] == 5

    def test_sanitize_summarizes_large_arrays(self):
        isrcs = [f"GBLNT19000{i:02d}" for i in range(12)]

        sanitized = sanitize_input({"isrcs": isrcs})

        assert sanitized["isrcs"] == {"_type": "array", "_length": 12, "_sample": isrcs[:5]}

    def test_sanitize_keeps_small_values(self):
        assert sanitize_input({"isrcs": ["A", "B"], "nested": {"query": "short"}}) == {
            "isrcs": ["A", "B"],
            "nested": {"query": "short"},
        }


class TestCancellationToken:
    """Tests for CancellationToken."""

    @pytest.mark.asyncio
    async def test_guard_returns_result(self):
        token = CancellationToken()

        async def work():
            return 42

        assert await token.guard(work()) == 42

    @pytest.mark.asyncio
    async def test_guard_interrupts_pending_work(self):
        token = CancellationToken()
        started = asyncio.Event()
        interrupted = False

        async def work():
            nonlocal interrupted
            started.set()
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                interrupted = True
                raise

        async def cancel_soon():
            await started.wait()
            token.cancel("client_cancelled")

        canceller = asyncio.create_task(cancel_soon())
        with pytest.raises(StreamCancelled):
            await token.guard(work())
        await canceller

        assert interrupted is True
        assert token.reason == "client_cancelled"

    @pytest.mark.asyncio
    async def test_already_cancelled(self):
        token = CancellationToken()
        token.cancel()

        async def work():
            return 1

        with pytest.raises(StreamCancelled):
            await token.guard(work())
        with pytest.raises(StreamCancelled):
            token.raise_if_cancelled()

    def test_first_reason_kept(self):
        token = CancellationToken()
        token.cancel("client_cancelled")
        token.cancel("shutdown")

        assert token.cancelled
        assert token.reason == "client_cancelled"

    @pytest.mark.asyncio
    async def test_guard_propagates_failure(self):
        token = CancellationToken()

        async def work():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await token.guard(work())
