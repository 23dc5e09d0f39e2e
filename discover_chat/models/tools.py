"""Agent tool input and output models.

Inputs are validated at the tool boundary before any service is called.
Outputs serialize to camelCase and are sent to the client on
``tool_call_end`` and persisted in ``tool_result`` blocks.
"""

from typing import Annotated, Literal

from pydantic import Field

from discover_chat.models.base import CamelModel

# ISO 3901: 12 alphanumeric characters
ISRC_PATTERN = r"^[A-Za-z0-9]{12}$"

Isrc = Annotated[str, Field(pattern=ISRC_PATTERN)]


# Inputs


class SemanticSearchInput(CamelModel):
    """Input schema for semantic search tool."""

    query: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        description="Natural language description of the desired mood, theme, or lyrical content",
        examples=["melancholic songs about lost love", "upbeat summer vibes"],
    )
    limit: int = Field(default=20, ge=1, le=50, description="Maximum number of results to return")


class TidalSearchInput(CamelModel):
    """Input schema for catalogue search tool."""

    query: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="Artist name, album title, track title, or a combination",
        examples=["Radiohead", "OK Computer", "Karma Police Radiohead"],
    )
    search_type: Literal["tracks", "albums", "both"] = Field(..., description="What type of content to search for")
    limit: int = Field(default=20, ge=1, le=100, description="Maximum number of results per type")


class BatchMetadataInput(CamelModel):
    """Input schema for batch metadata tool."""

    isrcs: list[Isrc] = Field(
        ...,
        max_length=100,
        description="ISRCs (International Standard Recording Codes), at most 100 per request",
    )

    def normalized_isrcs(self) -> list[str]:
        """Upper-cased ISRCs with duplicates removed, order preserved."""
        return list(dict.fromkeys(isrc.upper() for isrc in self.isrcs))


class AlbumTracksInput(CamelModel):
    """Input schema for album tracks tool."""

    album_id: str = Field(..., min_length=1, description="Album ID from a previous tidalSearch result")


class PlaylistInputTrack(CamelModel):
    """One track the agent wants in the playlist."""

    isrc: Isrc
    title: str = Field(..., min_length=1, max_length=500)
    artist: str = Field(..., min_length=1, max_length=500)
    reasoning: str = Field(
        ..., min_length=1, max_length=1000, description="One sentence on why the track fits the playlist"
    )


class SuggestPlaylistInput(CamelModel):
    """Input schema for the playlist presentation tool."""

    title: str = Field(..., min_length=1, max_length=200, description="Descriptive playlist title")
    tracks: list[PlaylistInputTrack] = Field(..., min_length=1, max_length=50)


# Outputs


class AudioFeatures(CamelModel):
    acousticness: float | None = None
    danceability: float | None = None
    energy: float | None = None
    instrumentalness: float | None = None
    key: int | None = None
    liveness: float | None = None
    loudness: float | None = None
    mode: int | None = None
    speechiness: float | None = None
    tempo: float | None = None
    valence: float | None = None


class TrackResult(CamelModel):
    """Track as returned by catalogue lookups, with library and index status."""

    tidal_id: str | None = None
    isrc: str
    title: str
    artist: str
    album: str = ""
    artwork_url: str | None = None
    duration: int | None = None
    explicit: bool | None = None
    in_library: bool = False
    is_indexed: bool = False


class IndexedTrackResult(TrackResult):
    """Track from the vector index with full metadata."""

    is_indexed: bool = True
    score: float | None = None
    short_description: str | None = None
    lyrics: str | None = None
    interpretation: str | None = None
    audio_features: AudioFeatures | None = None


class AlbumResult(CamelModel):
    tidal_id: str
    title: str
    artist: str
    artwork_url: str | None = None
    release_date: str | None = None
    track_count: int = 0
    in_library: bool = False


class ToolOutput(CamelModel):
    """Fields every tool output carries."""

    summary: str
    duration_ms: int = 0

    @property
    def result_count(self) -> int:
        return 0


class SemanticSearchOutput(ToolOutput):
    tracks: list[IndexedTrackResult]
    query: str
    total_found: int

    @property
    def result_count(self) -> int:
        return self.total_found


class SearchTotals(CamelModel):
    tracks: int = 0
    albums: int = 0


class TidalSearchOutput(ToolOutput):
    tracks: list[TrackResult] | None = None
    albums: list[AlbumResult] | None = None
    query: str
    total_found: SearchTotals

    @property
    def result_count(self) -> int:
        return self.total_found.tracks + self.total_found.albums


class AlbumTracksOutput(ToolOutput):
    album_id: str
    album_title: str
    artist: str
    tracks: list[TrackResult]

    @property
    def result_count(self) -> int:
        return len(self.tracks)


class BatchMetadataOutput(ToolOutput):
    tracks: list[IndexedTrackResult]
    found: list[str]
    not_found: list[str]

    @property
    def result_count(self) -> int:
        return len(self.tracks)


class EnrichedPlaylistTrack(CamelModel):
    """Playlist track, enriched with catalogue metadata where it could be found."""

    isrc: str
    title: str
    artist: str
    album: str | None = None
    artwork_url: str | None = None
    duration: int | None = None
    reasoning: str
    enriched: bool
    tidal_id: str | None = None


class PlaylistStats(CamelModel):
    total_tracks: int
    enriched_tracks: int
    failed_tracks: int


class SuggestPlaylistOutput(ToolOutput):
    title: str
    tracks: list[EnrichedPlaylistTrack]
    stats: PlaylistStats

    @property
    def result_count(self) -> int:
        return len(self.tracks)
