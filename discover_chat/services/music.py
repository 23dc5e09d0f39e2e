"""Music collaborator service interfaces and in-memory implementations.

The in-memory implementations serve a small mock catalogue. Keyword scoring
stands in for hybrid vector/BM25 search.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Protocol

from discover_chat.services.cache import TTLCache
from discover_chat.utils.logging import get_logger

logger = get_logger(__name__)


class CatalogNotFoundError(LookupError):
    """Raised when a catalogue item does not exist."""


@dataclass
class CatalogTrack:
    """Track as known to the streaming catalogue."""

    tidal_id: str
    isrc: str
    title: str
    artist: str
    album_id: str
    duration: int
    explicit: bool = False


@dataclass
class CatalogAlbum:
    """Album as known to the streaming catalogue."""

    tidal_id: str
    title: str
    artist: str
    artwork_url: str | None
    release_date: str | None
    track_ids: list[str] = field(default_factory=list)


@dataclass
class IndexedTrack:
    """Track in the discovery index, with its analysed metadata."""

    isrc: str
    title: str
    artist: str
    album: str
    artwork_url: str | None = None
    short_description: str | None = None
    lyrics: str | None = None
    interpretation: str | None = None
    audio_features: dict[str, Any] = field(default_factory=dict)
    keywords: tuple[str, ...] = ()


@dataclass
class DiscoveryHit:
    isrc: str
    title: str
    artist: str
    album: str
    artwork_url: str | None
    score: float


@dataclass
class DiscoveryResults:
    hits: list[DiscoveryHit]
    total: int


@dataclass
class CatalogSearchResults:
    tracks: list[CatalogTrack]
    albums: list[CatalogAlbum]
    total_tracks: int
    total_albums: int


class DiscoveryService(Protocol):
    """Interface for mood/theme search over the indexed tracks."""

    async def search(self, query: str, limit: int) -> DiscoveryResults:
        ...


class TrackMetadataService(Protocol):
    """Interface for indexed track metadata lookups."""

    async def get_extended_metadata(self, isrc: str) -> IndexedTrack | None:
        """Get the indexed metadata for an ISRC.

        Args:
            isrc: Upper-case ISRC

        Returns:
            The indexed track, or None if it is not indexed
        """
        ...

    async def check_indexed(self, isrcs: list[str]) -> dict[str, bool]:
        ...


class CatalogService(Protocol):
    """Interface for the streaming catalogue."""

    async def search(self, query: str, limit: int) -> CatalogSearchResults:
        ...

    async def get_album(self, album_id: str) -> CatalogAlbum:
        """Get album metadata.

        Raises:
            CatalogNotFoundError: If the album does not exist
        """
        ...

    async def get_album_tracks(self, album_id: str) -> list[CatalogTrack]:
        ...

    async def batch_fetch_isrcs(self, tidal_ids: list[str]) -> dict[str, str | None]:
        ...

    async def batch_fetch_tracks_by_isrc(self, isrcs: list[str]) -> dict[str, CatalogTrack]:
        ...

    async def batch_fetch_albums(self, album_ids: list[str]) -> dict[str, CatalogAlbum]:
        ...


class LibraryService(Protocol):
    """Interface for the user's saved library."""

    async def library_isrcs(self, isrcs: list[str]) -> set[str]:
        """Return the subset of ``isrcs`` (upper-case) saved in the library."""
        ...

    async def library_album_ids(self, album_ids: list[str]) -> set[str]:
        ...


@dataclass
class MockCatalogue:
    """Shared data behind the in-memory services."""

    tracks: list[CatalogTrack]
    albums: dict[str, CatalogAlbum]
    indexed: dict[str, IndexedTrack]

    def track_by_isrc(self, isrc: str) -> CatalogTrack | None:
        for track in self.tracks:
            if track.isrc == isrc:
                return track
        return None


def _tokens(text: str) -> list[str]:
    return re.findall(r"[a-z0-9']+", text.lower())


def _score(query_tokens: list[str], haystack: str) -> float:
    haystack_tokens = set(_tokens(haystack))
    if not query_tokens:
        return 0.0
    matched = sum(1 for token in query_tokens if token in haystack_tokens)
    return matched / len(query_tokens)


class InMemoryDiscoveryService:
    """Keyword-scored search over the mock discovery index."""

    def __init__(self, catalogue: MockCatalogue, cache: TTLCache):
        self.catalogue = catalogue
        self.cache = cache

    async def search(self, query: str, limit: int) -> DiscoveryResults:
        cache_key = f"discovery:{query.lower()}:{limit}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        query_tokens = _tokens(query)
        scored: list[DiscoveryHit] = []
        for track in self.catalogue.indexed.values():
            haystack = " ".join(
                [track.title, track.artist, track.album, track.short_description or "", *track.keywords]
            )
            score = _score(query_tokens, haystack)
            if score > 0:
                scored.append(
                    DiscoveryHit(
                        isrc=track.isrc,
                        title=track.title,
                        artist=track.artist,
                        album=track.album,
                        artwork_url=track.artwork_url,
                        score=round(score, 4),
                    )
                )

        scored.sort(key=lambda hit: hit.score, reverse=True)
        results = DiscoveryResults(hits=scored[:limit], total=len(scored))
        self.cache.set(cache_key, results)
        logger.debug(f"Discovery search '{query[:100]}' matched {results.total} tracks")
        return results


class InMemoryTrackMetadataService:
    def __init__(self, catalogue: MockCatalogue):
        self.catalogue = catalogue

    async def get_extended_metadata(self, isrc: str) -> IndexedTrack | None:
        return self.catalogue.indexed.get(isrc.upper())

    async def check_indexed(self, isrcs: list[str]) -> dict[str, bool]:
        return {isrc: isrc.upper() in self.catalogue.indexed for isrc in isrcs}


class InMemoryCatalogService:
    """Mock streaming catalogue with cached searches."""

    def __init__(self, catalogue: MockCatalogue, cache: TTLCache):
        self.catalogue = catalogue
        self.cache = cache

    async def search(self, query: str, limit: int) -> CatalogSearchResults:
        cache_key = f"catalog:{query.lower()}:{limit}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        query_tokens = _tokens(query)
        tracks = [
            track
            for track in self.catalogue.tracks
            if _score(query_tokens, f"{track.title} {track.artist} {self._album_title(track)}") > 0
        ]
        albums = [
            album
            for album in self.catalogue.albums.values()
            if _score(query_tokens, f"{album.title} {album.artist}") > 0
        ]

        results = CatalogSearchResults(
            tracks=tracks[:limit],
            albums=albums[:limit],
            total_tracks=len(tracks),
            total_albums=len(albums),
        )
        self.cache.set(cache_key, results)
        return results

    async def get_album(self, album_id: str) -> CatalogAlbum:
        album = self.catalogue.albums.get(album_id)
        if album is None:
            raise CatalogNotFoundError(f"Album {album_id} not found")
        return album

    async def get_album_tracks(self, album_id: str) -> list[CatalogTrack]:
        album = await self.get_album(album_id)
        by_id = {track.tidal_id: track for track in self.catalogue.tracks}
        return [by_id[track_id] for track_id in album.track_ids if track_id in by_id]

    async def batch_fetch_isrcs(self, tidal_ids: list[str]) -> dict[str, str | None]:
        by_id = {track.tidal_id: track.isrc for track in self.catalogue.tracks}
        return {tidal_id: by_id.get(tidal_id) for tidal_id in tidal_ids}

    async def batch_fetch_tracks_by_isrc(self, isrcs: list[str]) -> dict[str, CatalogTrack]:
        found: dict[str, CatalogTrack] = {}
        for isrc in isrcs:
            track = self.catalogue.track_by_isrc(isrc.upper())
            if track is not None:
                found[isrc.upper()] = track
        return found

    async def batch_fetch_albums(self, album_ids: list[str]) -> dict[str, CatalogAlbum]:
        return {album_id: self.catalogue.albums[album_id] for album_id in album_ids if album_id in self.catalogue.albums}

    def _album_title(self, track: CatalogTrack) -> str:
        album = self.catalogue.albums.get(track.album_id)
        return album.title if album else ""


class InMemoryLibraryService:
    def __init__(self, track_isrcs: set[str] | None = None, album_ids: set[str] | None = None):
        self.track_isrcs = {isrc.upper() for isrc in track_isrcs or set()}
        self.album_ids = set(album_ids or set())

    async def library_isrcs(self, isrcs: list[str]) -> set[str]:
        return {isrc.upper() for isrc in isrcs if isrc.upper() in self.track_isrcs}

    async def library_album_ids(self, album_ids: list[str]) -> set[str]:
        return {album_id for album_id in album_ids if album_id in self.album_ids}


def create_mock_catalogue() -> MockCatalogue:
    """Create mock catalogue data for development and tests."""
    albums = {
        "ALB_001": CatalogAlbum(
            tidal_id="ALB_001",
            title="Night Ferry",
            artist="The Lanterns",
            artwork_url="https://images.example.com/alb_001.jpg",
            release_date="2019-10-04",
            track_ids=["TRK_001", "TRK_002", "TRK_003"],
        ),
        "ALB_002": CatalogAlbum(
            tidal_id="ALB_002",
            title="Summer Static",
            artist="Coastline Radio",
            artwork_url="https://images.example.com/alb_002.jpg",
            release_date="2021-06-18",
            track_ids=["TRK_004", "TRK_005"],
        ),
        "ALB_003": CatalogAlbum(
            tidal_id="ALB_003",
            title="Paper Houses",
            artist="Mira Vale",
            artwork_url=None,
            release_date="2016-02-12",
            track_ids=["TRK_006", "TRK_007"],
        ),
    }

    tracks = [
        CatalogTrack("TRK_001", "GBLNT1900001", "Harbour Lights", "The Lanterns", "ALB_001", 241),
        CatalogTrack("TRK_002", "GBLNT1900002", "Last Ferry Home", "The Lanterns", "ALB_001", 275),
        CatalogTrack("TRK_003", "GBLNT1900003", "Salt in the Wound", "The Lanterns", "ALB_001", 198, explicit=True),
        CatalogTrack("TRK_004", "USCLR2100001", "Sunburnt Radio", "Coastline Radio", "ALB_002", 187),
        CatalogTrack("TRK_005", "USCLR2100002", "Boardwalk", "Coastline Radio", "ALB_002", 212),
        CatalogTrack("TRK_006", "SEMRV1600001", "Paper Houses", "Mira Vale", "ALB_003", 263),
        CatalogTrack("TRK_007", "SEMRV1600002", "Letters I Never Sent", "Mira Vale", "ALB_003", 301),
    ]

    indexed = {
        "GBLNT1900001": IndexedTrack(
            isrc="GBLNT1900001",
            title="Harbour Lights",
            artist="The Lanterns",
            album="Night Ferry",
            artwork_url="https://images.example.com/alb_001.jpg",
            short_description="Slow, melancholic ballad about watching someone leave by sea",
            interpretation="Grief at a departure the narrator could not prevent",
            audio_features={"energy": 0.21, "valence": 0.12, "tempo": 72.0, "acousticness": 0.81},
            keywords=("melancholic", "sad", "longing", "night", "sea"),
        ),
        "GBLNT1900002": IndexedTrack(
            isrc="GBLNT1900002",
            title="Last Ferry Home",
            artist="The Lanterns",
            album="Night Ferry",
            artwork_url="https://images.example.com/alb_001.jpg",
            short_description="Wistful late-night travel song",
            interpretation="Accepting the end of a relationship on the journey home",
            audio_features={"energy": 0.34, "valence": 0.25, "tempo": 88.0},
            keywords=("melancholic", "lost love", "night", "travel"),
        ),
        "USCLR2100001": IndexedTrack(
            isrc="USCLR2100001",
            title="Sunburnt Radio",
            artist="Coastline Radio",
            album="Summer Static",
            artwork_url="https://images.example.com/alb_002.jpg",
            short_description="Bright, upbeat guitar pop for summer drives",
            audio_features={"energy": 0.86, "valence": 0.91, "tempo": 128.0, "danceability": 0.74},
            keywords=("upbeat", "summer", "happy", "driving"),
        ),
        "USCLR2100002": IndexedTrack(
            isrc="USCLR2100002",
            title="Boardwalk",
            artist="Coastline Radio",
            album="Summer Static",
            artwork_url="https://images.example.com/alb_002.jpg",
            short_description="Carefree summer anthem",
            audio_features={"energy": 0.79, "valence": 0.88, "tempo": 122.0},
            keywords=("upbeat", "summer", "beach"),
        ),
        "SEMRV1600002": IndexedTrack(
            isrc="SEMRV1600002",
            title="Letters I Never Sent",
            artist="Mira Vale",
            album="Paper Houses",
            short_description="Quiet piano piece about regret and lost love",
            lyrics="I wrote you every winter, never posted one",
            interpretation="Regret over words left unsaid",
            audio_features={"energy": 0.15, "valence": 0.18, "tempo": 66.0, "instrumentalness": 0.02},
            keywords=("melancholic", "regret", "lost love", "piano"),
        ),
    }

    return MockCatalogue(tracks=tracks, albums=albums, indexed=indexed)


@dataclass
class MusicServices:
    """The collaborator services the agent tools call."""

    discovery: DiscoveryService
    metadata: TrackMetadataService
    catalog: CatalogService
    library: LibraryService

    @classmethod
    def in_memory(cls, cache: TTLCache, catalogue: MockCatalogue | None = None) -> "MusicServices":
        catalogue = catalogue or create_mock_catalogue()
        return cls(
            discovery=InMemoryDiscoveryService(catalogue, cache),
            metadata=InMemoryTrackMetadataService(catalogue),
            catalog=InMemoryCatalogService(catalogue, cache),
            library=InMemoryLibraryService(track_isrcs={"GBLNT1900001"}, album_ids={"ALB_003"}),
        )
