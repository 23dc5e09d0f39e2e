"""Tests for the agent tools and the tools registry."""

from unittest.mock import AsyncMock

import pytest

from discover_chat.services.tracing import SpanStatus
from discover_chat.tools.batch_metadata import build_summary as batch_summary
from discover_chat.tools.suggest_playlist import build_summary as playlist_summary
from discover_chat.tools.tidal_search import build_summary as search_summary


@pytest.fixture
def trace(tracer):
    return tracer.start_trace("test", session_id="conv_test")


class TestRegistry:
    """Tests for tool registration and advertisement."""

    def test_default_tools_registered(self, registry):
        assert registry.get_tool_names() == [
            "semanticSearch",
            "tidalSearch",
            "albumTracks",
            "batchMetadata",
            "suggestPlaylist",
        ]
        assert registry.has_tool("albumTracks")
        assert not registry.has_tool("lyricsSearch")

    def test_llm_tools_use_camel_case_schemas(self, registry):
        tools = {tool.name: tool for tool in registry.get_llm_tools()}

        tidal = tools["tidalSearch"].input_schema
        assert "searchType" in tidal["properties"]
        assert "searchType" in tidal["required"]
        assert "albumId" in tools["albumTracks"].input_schema["properties"]

    def test_presentation_strategies(self, registry):
        """Playlist assembly is rendered and retried differently from search tools."""
        assert registry.get_tool("suggestPlaylist").presentation.kind == "playlist"
        assert registry.get_tool("suggestPlaylist").presentation.self_retrying
        for name in ("semanticSearch", "tidalSearch", "albumTracks", "batchMetadata"):
            assert registry.get_tool(name).presentation.kind == "search"


class TestSemanticSearch:
    """Tests for the semanticSearch tool."""

    @pytest.mark.asyncio
    async def test_finds_tracks_by_mood(self, registry, trace):
        result = await registry.execute("toolu_1", "semanticSearch", {"query": "melancholic"}, trace)

        assert result.ok
        output = result.output_dict()
        assert output["totalFound"] == 3
        assert output["summary"] == 'Found 3 tracks matching "melancholic"'
        by_isrc = {track["isrc"]: track for track in output["tracks"]}
        assert set(by_isrc) == {"GBLNT1900001", "GBLNT1900002", "SEMRV1600002"}
        assert by_isrc["GBLNT1900001"]["inLibrary"] is True
        assert by_isrc["GBLNT1900002"]["inLibrary"] is False
        assert by_isrc["GBLNT1900001"]["isIndexed"] is True
        assert by_isrc["GBLNT1900001"]["audioFeatures"]["valence"] == 0.12

    @pytest.mark.asyncio
    async def test_no_matches(self, registry, trace):
        result = await registry.execute("toolu_1", "semanticSearch", {"query": "polka"}, trace)

        assert result.output.summary == 'No tracks found matching "polka"'
        assert result.output.result_count == 0

    @pytest.mark.asyncio
    async def test_library_failure_fails_open(self, registry, services, trace):
        services.library.library_isrcs = AsyncMock(side_effect=RuntimeError("library down"))

        result = await registry.execute("toolu_1", "semanticSearch", {"query": "melancholic"}, trace)

        assert result.ok
        assert all(track["inLibrary"] is False for track in result.output_dict()["tracks"])

    @pytest.mark.asyncio
    async def test_service_failure_is_retryable_tool_error(self, registry, services, trace):
        services.discovery.search = AsyncMock(side_effect=RuntimeError("index offline"))

        result = await registry.execute("toolu_1", "semanticSearch", {"query": "melancholic"}, trace)

        assert not result.ok
        assert result.error.message == "Vector search service is temporarily unavailable"
        assert result.error.retryable is True
        assert result.was_retried is True
        assert services.discovery.search.await_count == 2


class TestTidalSearch:
    """Tests for the tidalSearch tool."""

    @pytest.mark.asyncio
    async def test_search_both(self, registry, trace):
        result = await registry.execute(
            "toolu_1", "tidalSearch", {"query": "Lanterns", "searchType": "both"}, trace
        )

        output = result.output_dict()
        assert output["summary"] == 'Found 3 tracks and 1 album for "Lanterns"'
        assert output["totalFound"] == {"tracks": 3, "albums": 1}
        assert result.output.result_count == 4
        tracks = {track["isrc"]: track for track in output["tracks"]}
        assert tracks["GBLNT1900001"]["album"] == "Night Ferry"
        assert tracks["GBLNT1900001"]["inLibrary"] is True
        assert tracks["GBLNT1900003"]["isIndexed"] is False
        assert output["albums"][0]["tidalId"] == "ALB_001"

    @pytest.mark.asyncio
    async def test_search_albums_only(self, registry, trace):
        result = await registry.execute(
            "toolu_1", "tidalSearch", {"query": "Mira Vale", "searchType": "albums"}, trace
        )

        output = result.output_dict()
        assert "tracks" not in output
        assert output["albums"][0]["inLibrary"] is True
        assert output["summary"] == 'Found 1 album for "Mira Vale"'

    def test_summaries(self):
        assert search_summary("x", 0, 0, "both") == 'No results found for "x"'
        assert search_summary("x", 1, 0, "tracks") == 'Found 1 track for "x"'
        assert search_summary("x", 2, 3, "both") == 'Found 2 tracks and 3 albums for "x"'

    @pytest.mark.asyncio
    async def test_invalid_search_type(self, registry, trace):
        result = await registry.execute("toolu_1", "tidalSearch", {"query": "x", "searchType": "artists"}, trace)

        assert result.error.code == "VALIDATION_ERROR"
        assert result.error.retryable is False


class TestAlbumTracks:
    """Tests for the albumTracks tool."""

    @pytest.mark.asyncio
    async def test_lists_album_tracks(self, registry, trace):
        result = await registry.execute("toolu_1", "albumTracks", {"albumId": "ALB_003"}, trace)

        output = result.output_dict()
        assert output["summary"] == "Paper Houses has 2 tracks"
        assert [track["title"] for track in output["tracks"]] == ["Paper Houses", "Letters I Never Sent"]

    @pytest.mark.asyncio
    async def test_unknown_album_is_not_retried(self, registry, services, trace):
        result = await registry.execute("toolu_1", "albumTracks", {"albumId": "ALB_404"}, trace)

        assert result.error.message == "Album not found: ALB_404"
        assert result.error.code == "NOT_FOUND"
        assert result.error.retryable is False
        assert result.was_retried is False


class TestBatchMetadata:
    """Tests for the batchMetadata tool."""

    @pytest.mark.asyncio
    async def test_partial_match(self, registry, trace):
        result = await registry.execute(
            "toolu_1", "batchMetadata", {"isrcs": ["gblnt1900001", "SEMRV1600001"]}, trace
        )

        output = result.output_dict()
        assert output["found"] == ["GBLNT1900001"]
        assert output["notFound"] == ["SEMRV1600001"]
        assert output["summary"] == "Found 1 of 2 tracks (1 not indexed)"

    @pytest.mark.asyncio
    async def test_empty_list(self, registry, trace):
        result = await registry.execute("toolu_1", "batchMetadata", {"isrcs": []}, trace)

        assert result.output.summary == "No ISRCs provided"

    @pytest.mark.asyncio
    async def test_malformed_isrc_rejected(self, registry, services, trace):
        services.metadata.get_extended_metadata = AsyncMock()

        result = await registry.execute("toolu_1", "batchMetadata", {"isrcs": ["BAD"]}, trace)

        assert result.error.code == "VALIDATION_ERROR"
        services.metadata.get_extended_metadata.assert_not_awaited()

    def test_summaries(self):
        assert batch_summary(3, 3) == "Found metadata for all 3 tracks"
        assert batch_summary(0, 2) == "No tracks found for 2 ISRCs"
        assert batch_summary(1, 4) == "Found 1 of 4 tracks (3 not indexed)"


class TestSuggestPlaylist:
    """Tests for the suggestPlaylist tool."""

    PLAYLIST = {
        "title": "Late Night",
        "tracks": [
            {"isrc": "GBLNT1900001", "title": "Harbour Lights", "artist": "The Lanterns", "reasoning": "Slow and sad"},
            {"isrc": "ZZZZZ0000001", "title": "Unknown", "artist": "Nobody", "reasoning": "Fits the mood"},
        ],
    }

    @pytest.mark.asyncio
    async def test_enriches_known_tracks(self, registry, trace):
        result = await registry.execute("toolu_1", "suggestPlaylist", self.PLAYLIST, trace)

        output = result.output_dict()
        assert output["summary"] == "Created playlist 'Late Night' with 2 tracks (1 without artwork)"
        assert output["stats"] == {"totalTracks": 2, "enrichedTracks": 1, "failedTracks": 1}
        first, second = output["tracks"]
        assert first["enriched"] is True
        assert first["album"] == "Night Ferry"
        assert first["artworkUrl"] == "https://images.example.com/alb_001.jpg"
        assert first["reasoning"] == "Slow and sad"
        assert second["enriched"] is False
        assert second["title"] == "Unknown"

    @pytest.mark.asyncio
    async def test_enrichment_failure_falls_back_to_agent_data(self, registry, services, trace):
        """The playlist is still produced when the catalogue keeps failing."""
        services.catalog.batch_fetch_tracks_by_isrc = AsyncMock(side_effect=RuntimeError("catalog down"))

        result = await registry.execute("toolu_1", "suggestPlaylist", self.PLAYLIST, trace)

        assert result.ok
        assert result.was_retried is False
        assert services.catalog.batch_fetch_tracks_by_isrc.await_count == 2
        assert result.output_dict()["stats"]["failedTracks"] == 2

    @pytest.mark.asyncio
    async def test_span_carries_playlist_stats(self, registry, tracer, trace):
        await registry.execute("toolu_1", "suggestPlaylist", self.PLAYLIST, trace)

        span = tracer.spans[-1]
        assert span.status is SpanStatus.OK
        assert span.output["title"] == "Late Night"
        assert span.output["stats"]["enrichedTracks"] == 1

    def test_summary(self):
        assert playlist_summary("Mix", 1, 0) == "Created playlist 'Mix' with 1 track"


class TestExecuteTracing:
    """Tests for span handling in ToolsRegistry.execute."""

    @pytest.mark.asyncio
    async def test_success_span(self, registry, tracer, trace):
        await registry.execute("toolu_1", "albumTracks", {"albumId": "ALB_001"}, trace)

        span = tracer.spans[-1]
        assert span.kind == "tool"
        assert span.metadata["toolName"] == "albumTracks"
        assert span.status is SpanStatus.OK
        assert span.output["resultCount"] == 3
        assert span.output["wasRetried"] is False

    @pytest.mark.asyncio
    async def test_error_span(self, registry, tracer, trace):
        await registry.execute("toolu_1", "nope", {}, trace)

        span = tracer.spans[-1]
        assert span.status is SpanStatus.ERROR
        assert span.output["code"] == "UNKNOWN_TOOL"
        assert span.output["retryable"] is False
