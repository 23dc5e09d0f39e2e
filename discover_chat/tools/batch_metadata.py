"""Batch metadata tool: full indexed metadata for up to 100 ISRCs."""

import asyncio
import time

from discover_chat.models.tools import BatchMetadataInput, BatchMetadataOutput, IndexedTrackResult
from discover_chat.services.music import MusicServices
from discover_chat.tools.base import ToolDefinition, elapsed_ms, library_isrcs_fail_open
from discover_chat.tools.semantic_search import audio_features_of
from discover_chat.utils.errors import ToolExecutionError
from discover_chat.utils.logging import get_logger

logger = get_logger(__name__)

DESCRIPTION = """Get lyrics, interpretation and audio features for up to 100 tracks by ISRC.

ISRCs are 12 alphanumeric characters. Tracks that are not indexed are listed
in notFound."""


def build_summary(found: int, requested: int) -> str:
    not_found = requested - found
    if found == requested:
        return f"Found metadata for all {found} track{'' if found == 1 else 's'}"
    if found == 0:
        return f"No tracks found for {not_found} ISRC{'' if not_found == 1 else 's'}"
    return f"Found {found} of {requested} tracks ({not_found} not indexed)"


def create_batch_metadata_tool(services: MusicServices) -> ToolDefinition:
    async def batch_metadata_handler(params: BatchMetadataInput) -> BatchMetadataOutput:
        started = time.monotonic()
        isrcs = params.normalized_isrcs()
        logger.info(f"batchMetadata: {len(isrcs)} ISRCs")

        if not isrcs:
            return BatchMetadataOutput(
                tracks=[], found=[], not_found=[], summary="No ISRCs provided", duration_ms=elapsed_ms(started)
            )

        try:
            payloads = await asyncio.gather(*(services.metadata.get_extended_metadata(isrc) for isrc in isrcs))
            found_pairs = [(isrc, payload) for isrc, payload in zip(isrcs, payloads, strict=True) if payload]
            found = [isrc for isrc, _ in found_pairs]
            not_found = [isrc for isrc, payload in zip(isrcs, payloads, strict=True) if payload is None]
            in_library = await library_isrcs_fail_open(services.library, found, "batchMetadata")
        except Exception as e:
            logger.error(f"batchMetadata failed for {len(isrcs)} ISRCs after {elapsed_ms(started)}ms: {e}")
            raise ToolExecutionError(
                "Metadata service is temporarily unavailable", retryable=True, code="INTERNAL_ERROR"
            ) from e

        tracks = [
            IndexedTrackResult(
                isrc=isrc,
                title=payload.title,
                artist=payload.artist,
                album=payload.album,
                in_library=isrc in in_library,
                score=1.0,
                short_description=payload.short_description,
                lyrics=payload.lyrics,
                interpretation=payload.interpretation,
                audio_features=audio_features_of(payload),
            )
            for isrc, payload in found_pairs
        ]

        logger.info(f"batchMetadata: {len(found)} found, {len(not_found)} not indexed ({elapsed_ms(started)}ms)")
        return BatchMetadataOutput(
            tracks=tracks,
            found=found,
            not_found=not_found,
            summary=build_summary(len(found), len(isrcs)),
            duration_ms=elapsed_ms(started),
        )

    return ToolDefinition(
        name="batchMetadata",
        description=DESCRIPTION,
        input_schema_class=BatchMetadataInput,
        handler=batch_metadata_handler,
    )
