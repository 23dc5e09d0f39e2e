"""Catalogue search tool: look up artists, albums and tracks by name."""

import time

from discover_chat.models.tools import AlbumResult, SearchTotals, TidalSearchInput, TidalSearchOutput, TrackResult
from discover_chat.services.music import MusicServices
from discover_chat.tools.base import (
    ToolDefinition,
    elapsed_ms,
    indexed_isrcs_fail_open,
    library_album_ids_fail_open,
    library_isrcs_fail_open,
)
from discover_chat.utils.errors import ToolExecutionError
from discover_chat.utils.logging import get_logger

logger = get_logger(__name__)

DESCRIPTION = """Search the Tidal catalogue by artist name, album title, or track title.

Set searchType to "tracks", "albums" or "both". Each result says whether it
is in the user's library (inLibrary) and whether it has been analysed for
semantic search (isIndexed). Use albumTracks with an album's tidalId to list
its tracks."""


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


def build_summary(query: str, tracks_count: int, albums_count: int, search_type: str) -> str:
    if tracks_count + albums_count == 0:
        return f'No results found for "{query}"'

    parts = []
    if search_type in ("tracks", "both"):
        parts.append(_plural(tracks_count, "track"))
    if search_type in ("albums", "both"):
        parts.append(_plural(albums_count, "album"))
    return f'Found {" and ".join(parts)} for "{query}"'


def create_tidal_search_tool(services: MusicServices) -> ToolDefinition:
    async def tidal_search_handler(params: TidalSearchInput) -> TidalSearchOutput:
        started = time.monotonic()
        want_tracks = params.search_type in ("tracks", "both")
        want_albums = params.search_type in ("albums", "both")
        logger.info(f"tidalSearch: query='{params.query[:100]}' type={params.search_type} limit={params.limit}")

        try:
            results = await services.catalog.search(params.query, params.limit)
            catalog_tracks = results.tracks if want_tracks else []
            catalog_albums = results.albums if want_albums else []

            isrc_map: dict[str, str | None] = {}
            if catalog_tracks:
                try:
                    isrc_map = await services.catalog.batch_fetch_isrcs([track.tidal_id for track in catalog_tracks])
                except Exception as e:
                    logger.warning(f"tidalSearch: ISRC lookup failed, continuing without it: {e}")

            isrcs = [isrc.upper() for isrc in isrc_map.values() if isrc]
            in_library = await library_isrcs_fail_open(services.library, isrcs, "tidalSearch")
            indexed = await indexed_isrcs_fail_open(services.metadata, isrcs, "tidalSearch")
            albums_in_library = await library_album_ids_fail_open(
                services.library, [album.tidal_id for album in catalog_albums], "tidalSearch"
            )
            track_albums = await services.catalog.batch_fetch_albums(
                list(dict.fromkeys(track.album_id for track in catalog_tracks))
            )
            album_titles = {album_id: album.title for album_id, album in track_albums.items()}

            tracks = []
            for track in catalog_tracks:
                isrc = (isrc_map.get(track.tidal_id) or "").upper()
                tracks.append(
                    TrackResult(
                        tidal_id=track.tidal_id,
                        isrc=isrc,
                        title=track.title,
                        artist=track.artist,
                        album=album_titles.get(track.album_id, ""),
                        duration=track.duration,
                        explicit=track.explicit,
                        in_library=bool(isrc) and isrc in in_library,
                        is_indexed=bool(isrc) and indexed.get(isrc, False),
                    )
                )
            albums = [
                AlbumResult(
                    tidal_id=album.tidal_id,
                    title=album.title,
                    artist=album.artist,
                    artwork_url=album.artwork_url,
                    release_date=album.release_date,
                    track_count=len(album.track_ids),
                    in_library=album.tidal_id in albums_in_library,
                )
                for album in catalog_albums
            ]
        except ToolExecutionError:
            raise
        except Exception as e:
            logger.error(f"tidalSearch failed after {elapsed_ms(started)}ms: {e}")
            message = str(e).lower()
            if "rate limit" in message:
                raise ToolExecutionError(
                    "Rate limit exceeded. Please wait a moment and try again.", retryable=True, code="RATE_LIMIT"
                ) from e
            if "timeout" in message:
                raise ToolExecutionError("Tidal search timed out. Please try again.", retryable=True, code="TIMEOUT") from e
            raise ToolExecutionError(
                "Tidal search is temporarily unavailable", retryable="unavailable" in message, code="INTERNAL_ERROR"
            ) from e

        summary = build_summary(params.query, len(tracks), len(albums), params.search_type)
        logger.info(f"tidalSearch: {len(tracks)} tracks, {len(albums)} albums in {elapsed_ms(started)}ms")
        return TidalSearchOutput(
            tracks=tracks if want_tracks else None,
            albums=albums if want_albums else None,
            query=params.query,
            total_found=SearchTotals(
                tracks=results.total_tracks if want_tracks else 0,
                albums=results.total_albums if want_albums else 0,
            ),
            summary=summary,
            duration_ms=elapsed_ms(started),
        )

    return ToolDefinition(
        name="tidalSearch",
        description=DESCRIPTION,
        input_schema_class=TidalSearchInput,
        handler=tidal_search_handler,
    )
