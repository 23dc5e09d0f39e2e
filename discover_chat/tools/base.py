"""Base types and definitions for tools."""

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from pydantic import BaseModel

from discover_chat.models.llm import LLMTool
from discover_chat.models.tools import SuggestPlaylistOutput, ToolOutput
from discover_chat.services.music import LibraryService, TrackMetadataService
from discover_chat.utils.logging import get_logger

logger = get_logger(__name__)

ToolHandler = Callable[[Any], Awaitable[ToolOutput]]


class PresentationStrategy(Protocol):
    """How a tool's result is traced and rendered."""

    kind: Literal["search", "playlist"]
    self_retrying: bool

    def span_metadata(self, output: ToolOutput) -> dict[str, Any]:
        ...


@dataclass(frozen=True)
class SearchPresentation:
    """Search-style tools: rendered as a result summary, retried generically."""

    kind: Literal["search", "playlist"] = "search"
    self_retrying: bool = False

    def span_metadata(self, output: ToolOutput) -> dict[str, Any]:
        return {}


@dataclass(frozen=True)
class PlaylistPresentation:
    """Playlist assembly: rendered as a playlist card, retries its own enrichment."""

    kind: Literal["search", "playlist"] = "playlist"
    self_retrying: bool = True

    def span_metadata(self, output: ToolOutput) -> dict[str, Any]:
        if isinstance(output, SuggestPlaylistOutput):
            return {"title": output.title, "stats": output.stats.to_wire()}
        return {}


@dataclass
class ToolDefinition:
    """Definition of a tool available to the AI assistant."""

    name: str
    description: str
    input_schema_class: type[BaseModel]
    handler: ToolHandler
    presentation: PresentationStrategy = field(default_factory=SearchPresentation)

    def get_json_schema(self) -> dict[str, Any]:
        """Get JSON schema for this tool's input."""
        return self.input_schema_class.model_json_schema(by_alias=True)

    def parse_input(self, raw_input: dict[str, Any]) -> BaseModel:
        """Parse and validate tool input."""
        return self.input_schema_class.model_validate(raw_input)

    def to_llm_tool(self) -> LLMTool:
        return LLMTool(name=self.name, description=self.description, input_schema=self.get_json_schema())


def elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


async def library_isrcs_fail_open(library: LibraryService, isrcs: list[str], context: str) -> set[str]:
    """Library membership for ``isrcs``; an empty set if the lookup fails."""
    if not isrcs:
        return set()
    try:
        return await library.library_isrcs(isrcs)
    except Exception as e:
        logger.warning(f"{context}: library check failed for {len(isrcs)} ISRCs, continuing without it: {e}")
        return set()


async def library_album_ids_fail_open(library: LibraryService, album_ids: list[str], context: str) -> set[str]:
    if not album_ids:
        return set()
    try:
        return await library.library_album_ids(album_ids)
    except Exception as e:
        logger.warning(f"{context}: album library check failed, continuing without it: {e}")
        return set()


async def indexed_isrcs_fail_open(metadata: TrackMetadataService, isrcs: list[str], context: str) -> dict[str, bool]:
    if not isrcs:
        return {}
    try:
        return await metadata.check_indexed(isrcs)
    except Exception as e:
        logger.warning(f"{context}: index check failed for {len(isrcs)} ISRCs, continuing without it: {e}")
        return {}
