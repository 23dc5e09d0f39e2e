"""Semantic search tool: find indexed tracks by mood, theme or lyrical content."""

import time

from discover_chat.models.tools import AudioFeatures, IndexedTrackResult, SemanticSearchInput, SemanticSearchOutput
from discover_chat.services.music import IndexedTrack, MusicServices
from discover_chat.tools.base import ToolDefinition, elapsed_ms, library_isrcs_fail_open
from discover_chat.utils.errors import ToolExecutionError
from discover_chat.utils.logging import get_logger

logger = get_logger(__name__)

DESCRIPTION = """Search indexed tracks by mood, theme, or lyrical content.

Use this for descriptive requests such as "melancholic songs about lost love"
or "upbeat summer vibes". Results include lyrics, interpretation and audio
features, plus whether each track is already in the user's library.
Only tracks that have been analysed are searchable here; use tidalSearch for
artist, album or title lookups."""


def audio_features_of(track: IndexedTrack) -> AudioFeatures | None:
    if not any(value is not None for value in track.audio_features.values()):
        return None
    return AudioFeatures.model_validate(track.audio_features)


def create_semantic_search_tool(services: MusicServices) -> ToolDefinition:
    async def semantic_search_handler(params: SemanticSearchInput) -> SemanticSearchOutput:
        started = time.monotonic()
        logger.info(f"semanticSearch: query='{params.query[:100]}' limit={params.limit}")

        try:
            results = await services.discovery.search(params.query, params.limit)
            isrcs = [hit.isrc.upper() for hit in results.hits]
            in_library = await library_isrcs_fail_open(services.library, isrcs, "semanticSearch")

            tracks: list[IndexedTrackResult] = []
            for hit in results.hits:
                isrc = hit.isrc.upper()
                metadata = await services.metadata.get_extended_metadata(isrc)
                tracks.append(
                    IndexedTrackResult(
                        isrc=isrc,
                        title=hit.title,
                        artist=hit.artist,
                        album=hit.album,
                        artwork_url=hit.artwork_url,
                        in_library=isrc in in_library,
                        score=hit.score,
                        short_description=metadata.short_description if metadata else None,
                        lyrics=metadata.lyrics if metadata else None,
                        interpretation=metadata.interpretation if metadata else None,
                        audio_features=audio_features_of(metadata) if metadata else None,
                    )
                )
        except ToolExecutionError:
            raise
        except Exception as e:
            logger.error(f"semanticSearch failed after {elapsed_ms(started)}ms: {e}")
            raise ToolExecutionError(
                "Vector search service is temporarily unavailable", retryable=True, code="INTERNAL_ERROR"
            ) from e

        total = results.total
        summary = (
            f'Found {total} track{"" if total == 1 else "s"} matching "{params.query}"'
            if total > 0
            else f'No tracks found matching "{params.query}"'
        )
        logger.info(f"semanticSearch: {len(tracks)} results of {total} in {elapsed_ms(started)}ms")
        return SemanticSearchOutput(
            tracks=tracks, query=params.query, total_found=total, summary=summary, duration_ms=elapsed_ms(started)
        )

    return ToolDefinition(
        name="semanticSearch",
        description=DESCRIPTION,
        input_schema_class=SemanticSearchInput,
        handler=semantic_search_handler,
    )
