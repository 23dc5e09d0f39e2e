"""Album tracks tool: list every track of one catalogue album."""

import time

from discover_chat.models.tools import AlbumTracksInput, AlbumTracksOutput, TrackResult
from discover_chat.services.music import CatalogNotFoundError, MusicServices
from discover_chat.tools.base import ToolDefinition, elapsed_ms, indexed_isrcs_fail_open, library_isrcs_fail_open
from discover_chat.utils.errors import ToolExecutionError
from discover_chat.utils.logging import get_logger

logger = get_logger(__name__)

DESCRIPTION = """List all tracks on an album, by the album's tidalId from a tidalSearch result.

Each track carries inLibrary and isIndexed flags."""


def create_album_tracks_tool(services: MusicServices) -> ToolDefinition:
    async def album_tracks_handler(params: AlbumTracksInput) -> AlbumTracksOutput:
        started = time.monotonic()
        album_id = params.album_id
        logger.info(f"albumTracks: album_id={album_id}")

        try:
            album = await services.catalog.get_album(album_id)
            listing = await services.catalog.get_album_tracks(album_id)

            isrc_map: dict[str, str | None] = {}
            if listing:
                try:
                    isrc_map = await services.catalog.batch_fetch_isrcs([track.tidal_id for track in listing])
                except Exception as e:
                    logger.warning(f"albumTracks: ISRC lookup for {album_id} failed, continuing without it: {e}")

            isrcs = [isrc.upper() for isrc in isrc_map.values() if isrc]
            in_library = await library_isrcs_fail_open(services.library, isrcs, "albumTracks")
            indexed = await indexed_isrcs_fail_open(services.metadata, isrcs, "albumTracks")
        except CatalogNotFoundError as e:
            raise ToolExecutionError(f"Album not found: {album_id}", retryable=False, code="NOT_FOUND") from e
        except ToolExecutionError:
            raise
        except Exception as e:
            logger.error(f"albumTracks failed for {album_id} after {elapsed_ms(started)}ms: {e}")
            message = str(e).lower()
            if "not found" in message:
                raise ToolExecutionError(f"Album not found: {album_id}", retryable=False, code="NOT_FOUND") from e
            if "rate limit" in message:
                raise ToolExecutionError(
                    "Rate limit exceeded. Please wait a moment and try again.", retryable=True, code="RATE_LIMIT"
                ) from e
            if "timeout" in message:
                raise ToolExecutionError("Album fetch timed out. Please try again.", retryable=True, code="TIMEOUT") from e
            raise ToolExecutionError(
                "Failed to retrieve album tracks", retryable=False, code="INTERNAL_ERROR"
            ) from e

        tracks = []
        for track in listing:
            isrc = (isrc_map.get(track.tidal_id) or "").upper()
            tracks.append(
                TrackResult(
                    tidal_id=track.tidal_id,
                    isrc=isrc,
                    title=track.title,
                    artist=album.artist,
                    album=album.title,
                    artwork_url=album.artwork_url,
                    duration=track.duration,
                    explicit=track.explicit,
                    in_library=bool(isrc) and isrc in in_library,
                    is_indexed=bool(isrc) and indexed.get(isrc, False),
                )
            )

        summary = f"{album.title} has {len(tracks)} track{'' if len(tracks) == 1 else 's'}"
        logger.info(f"albumTracks: {summary} ({elapsed_ms(started)}ms)")
        return AlbumTracksOutput(
            album_id=album_id,
            album_title=album.title,
            artist=album.artist,
            tracks=tracks,
            summary=summary,
            duration_ms=elapsed_ms(started),
        )

    return ToolDefinition(
        name="albumTracks",
        description=DESCRIPTION,
        input_schema_class=AlbumTracksInput,
        handler=album_tracks_handler,
    )
