"""Playlist suggestion tool.

Presents the agent's playlist to the user. Tracks are enriched with catalogue
metadata (album, artwork, duration) where possible. Enrichment failures never
fail the tool: affected tracks fall back to the data the agent supplied.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from discover_chat.models.tools import (
    EnrichedPlaylistTrack,
    PlaylistInputTrack,
    PlaylistStats,
    SuggestPlaylistInput,
    SuggestPlaylistOutput,
)
from discover_chat.services.music import CatalogAlbum, CatalogTrack, MusicServices
from discover_chat.tools.base import PlaylistPresentation, ToolDefinition, elapsed_ms
from discover_chat.tools.retry import RetryConfig
from discover_chat.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DESCRIPTION = """Present a curated playlist to the user as a playlist card.

Call this once you have chosen the tracks. Give the playlist a descriptive
title and, for every track, its ISRC, title, artist and one sentence of
reasoning explaining why it fits. Use ISRCs from previous search results."""


async def _fetch_with_one_retry(
    fetch: Callable[[], Awaitable[dict[str, T]]], what: str, config: RetryConfig
) -> dict[str, T]:
    """Run one enrichment batch, retrying once; an empty result if both attempts fail."""
    try:
        async with asyncio.timeout(config.timeout_seconds):
            return await fetch()
    except Exception as e:
        logger.info(f"suggestPlaylist: {what} lookup failed, retrying in {config.delay_seconds}s: {e}")

    await asyncio.sleep(config.delay_seconds)
    try:
        async with asyncio.timeout(config.timeout_seconds):
            return await fetch()
    except Exception as e:
        logger.warning(f"suggestPlaylist: {what} lookup failed again, using agent data: {e}")
        return {}


async def enrich_playlist_tracks(
    tracks: list[PlaylistInputTrack], services: MusicServices, config: RetryConfig
) -> list[EnrichedPlaylistTrack]:
    """Enrich tracks with catalogue data, preserving the agent's order."""
    isrcs = list(dict.fromkeys(track.isrc.upper() for track in tracks))

    catalog_tracks: dict[str, CatalogTrack] = await _fetch_with_one_retry(
        lambda: services.catalog.batch_fetch_tracks_by_isrc(isrcs), "track", config
    )

    album_ids = list(dict.fromkeys(track.album_id for track in catalog_tracks.values() if track.album_id))
    albums: dict[str, CatalogAlbum] = {}
    if album_ids:
        albums = await _fetch_with_one_retry(lambda: services.catalog.batch_fetch_albums(album_ids), "album", config)

    enriched = []
    for track in tracks:
        isrc = track.isrc.upper()
        found = catalog_tracks.get(isrc)
        if found is None:
            enriched.append(unenriched_track(track))
            continue

        album = albums.get(found.album_id)
        enriched.append(
            EnrichedPlaylistTrack(
                isrc=isrc,
                title=found.title,
                artist=found.artist,
                album=album.title if album else None,
                artwork_url=album.artwork_url if album else None,
                duration=found.duration,
                reasoning=track.reasoning,
                enriched=True,
                tidal_id=found.tidal_id,
            )
        )
    return enriched


def unenriched_track(track: PlaylistInputTrack) -> EnrichedPlaylistTrack:
    return EnrichedPlaylistTrack(
        isrc=track.isrc.upper(),
        title=track.title,
        artist=track.artist,
        reasoning=track.reasoning,
        enriched=False,
    )


def build_summary(title: str, total: int, failed: int) -> str:
    summary = f"Created playlist '{title}' with {total} track{'' if total == 1 else 's'}"
    if failed:
        summary += f" ({failed} without artwork)"
    return summary


def create_suggest_playlist_tool(services: MusicServices, retry_config: RetryConfig | None = None) -> ToolDefinition:
    config = retry_config or RetryConfig()

    async def suggest_playlist_handler(params: SuggestPlaylistInput) -> SuggestPlaylistOutput:
        started = time.monotonic()
        logger.info(f"suggestPlaylist: title='{params.title[:100]}' tracks={len(params.tracks)}")

        tracks = await enrich_playlist_tracks(params.tracks, services, config)
        enriched_count = sum(1 for track in tracks if track.enriched)
        failed_count = len(tracks) - enriched_count

        logger.info(
            f"suggestPlaylist: {enriched_count}/{len(tracks)} tracks enriched ({elapsed_ms(started)}ms)"
        )
        return SuggestPlaylistOutput(
            title=params.title,
            tracks=tracks,
            stats=PlaylistStats(
                total_tracks=len(tracks), enriched_tracks=enriched_count, failed_tracks=failed_count
            ),
            summary=build_summary(params.title, len(tracks), failed_count),
            duration_ms=elapsed_ms(started),
        )

    return ToolDefinition(
        name="suggestPlaylist",
        description=DESCRIPTION,
        input_schema_class=SuggestPlaylistInput,
        handler=suggest_playlist_handler,
        presentation=PlaylistPresentation(),
    )
