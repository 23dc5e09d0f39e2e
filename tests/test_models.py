"""Tests for data models."""

import json
from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from discover_chat.models.conversation import ChatStreamRequest, ContentBlock, HealthResponse, Message
from discover_chat.models.llm import LLMMessage, LLMUsage, TextBlock, ToolResultBlock, ToolUseBlock
from discover_chat.models.tools import (
    BatchMetadataInput,
    SemanticSearchInput,
    SuggestPlaylistInput,
    TidalSearchInput,
    TidalSearchOutput,
)


def make_message(*blocks: ContentBlock) -> Message:
    return Message(
        id="msg_1",
        conversation_id="conv_1",
        role="assistant",
        content=list(blocks),
        created_at=datetime.now(UTC),
    )


class TestConversationModels:
    """Tests for conversation request/response models."""

    def test_chat_stream_request_valid(self):
        """Test valid chat stream request."""
        request = ChatStreamRequest(message="Hello")
        assert request.message == "Hello"
        assert request.conversation_id is None

    def test_chat_stream_request_from_json(self):
        """Test request parsing from camelCase JSON."""
        data = json.loads('{"message": "Hello", "conversationId": "clhqxrisp0001s67w2qccjhqr"}')
        request = ChatStreamRequest.model_validate(data)
        assert request.conversation_id == "clhqxrisp0001s67w2qccjhqr"

    def test_chat_stream_request_accepts_snake_case(self):
        request = ChatStreamRequest.model_validate({"message": "Hello", "conversation_id": "c1"})
        assert request.conversation_id == "c1"

    def test_health_response_valid(self):
        """Test valid health response."""
        now = datetime.now(UTC)
        response = HealthResponse(status="healthy", timestamp=now, version="1.0.0")
        assert response.status == "healthy"
        assert response.timestamp == now


class TestContentBlocks:
    """Tests for persisted content blocks and messages."""

    def test_tool_use_wire_form(self):
        block = ContentBlock.tool_use("toolu_1", "semanticSearch", {"query": "melancholic"})
        assert block.to_wire() == {
            "type": "tool_use",
            "toolId": "toolu_1",
            "toolName": "semanticSearch",
            "toolInput": {"query": "melancholic"},
        }

    def test_tool_result_wire_form(self):
        block = ContentBlock.tool_result_block("toolu_1", {"error": "Service down", "retryable": True})
        assert block.to_wire() == {
            "type": "tool_result",
            "toolId": "toolu_1",
            "toolResult": {"error": "Service down", "retryable": True},
        }

    def test_invalid_block_type(self):
        with pytest.raises(ValidationError):
            ContentBlock(type="image")

    def test_message_text_joins_text_blocks(self):
        message = make_message(
            ContentBlock.text_block("Let me search..."),
            ContentBlock.tool_use("toolu_1", "semanticSearch", {"query": "x"}),
            ContentBlock.tool_result_block("toolu_1", {}),
            ContentBlock.text_block("Here are 3 tracks"),
        )
        assert message.text() == "Let me search...\nHere are 3 tracks"

    def test_message_without_text(self):
        message = make_message(
            ContentBlock.text_block(""),
            ContentBlock.tool_use("toolu_1", "semanticSearch", {"query": "x"}),
        )
        assert message.text() is None


class TestLLMModels:
    """Tests for LLM-related models."""

    def test_llm_message_content_blocks(self):
        """Test LLM message with content blocks."""
        message = LLMMessage(role="assistant", content=[TextBlock(text="Hello")])
        assert message.content[0].text == "Hello"

    def test_tool_result_block_error(self):
        block = ToolResultBlock(tool_use_id="toolu_1", content="Error occurred", is_error=True)
        assert block.type == "tool_result"
        assert block.is_error is True

    def test_content_blocks_from_anthropic_json(self):
        """Test parsing Anthropic content blocks that carry extra fields."""
        anthropic_content = [
            {"citations": None, "text": "Let me search for that.", "type": "text"},
            {
                "id": "toolu_01AbC",
                "input": {"query": "melancholic", "limit": 10},
                "name": "semanticSearch",
                "type": "tool_use",
            },
        ]
        message = LLMMessage.model_validate({"role": "assistant", "content": anthropic_content})

        assert isinstance(message.content[0], TextBlock)
        assert isinstance(message.content[1], ToolUseBlock)
        assert message.content[1].input["limit"] == 10

    def test_unmodelled_fields_dropped(self):
        block = TextBlock.model_validate({"type": "text", "text": "Hi", "citations": None})

        assert TextBlock.model_config["extra"] == "ignore"
        assert not hasattr(block, "citations")
        assert block.model_dump() == {"type": "text", "text": "Hi"}

    def test_usage_accumulates(self):
        total = LLMUsage()
        total.add(LLMUsage(input_tokens=100, output_tokens=20))
        total.add(LLMUsage(input_tokens=200, output_tokens=30, cache_read_input_tokens=5))
        assert (total.input_tokens, total.output_tokens, total.total_tokens) == (300, 50, 350)
        assert total.cache_read_input_tokens == 5


class TestToolInputs:
    """Tests for tool input validation."""

    def test_semantic_search_defaults(self):
        assert SemanticSearchInput(query="sad songs").limit == 20

    def test_semantic_search_limit_bounds(self):
        with pytest.raises(ValidationError):
            SemanticSearchInput(query="sad songs", limit=51)

    def test_tidal_search_camel_case_input(self):
        tool_input = TidalSearchInput.model_validate({"query": "Lanterns", "searchType": "albums"})
        assert tool_input.search_type == "albums"

    def test_tidal_search_requires_search_type(self):
        with pytest.raises(ValidationError):
            TidalSearchInput.model_validate({"query": "Lanterns"})

    def test_batch_metadata_normalizes_isrcs(self):
        tool_input = BatchMetadataInput(isrcs=["gblnt1900001", "GBLNT1900001", "USRC17607839"])
        assert tool_input.normalized_isrcs() == ["GBLNT1900001", "USRC17607839"]

    def test_batch_metadata_rejects_malformed_isrc(self):
        with pytest.raises(ValidationError):
            BatchMetadataInput(isrcs=["NOT-AN-ISRC"])

    def test_batch_metadata_limit(self):
        with pytest.raises(ValidationError):
            BatchMetadataInput(isrcs=["GBLNT1900001"] * 101)

    def test_playlist_requires_tracks(self):
        with pytest.raises(ValidationError):
            SuggestPlaylistInput(title="Empty", tracks=[])


class TestToolOutputs:
    """Tests for tool output serialization."""

    def test_result_count_and_wire_keys(self):
        output = TidalSearchOutput(
            summary='Found 0 tracks and 1 album for "x"',
            query="x",
            albums=[],
            total_found={"tracks": 0, "albums": 1},
            duration_ms=12,
        )

        wire = output.to_wire()

        assert output.result_count == 1
        assert wire["totalFound"] == {"tracks": 0, "albums": 1}
        assert wire["durationMs"] == 12
        assert "tracks" not in wire
