"""
Data models for tracks, storage locators, catalog manifests and playback.

This module defines the core data structures shared by the station (which
streams bytes) and the player (which drives playback).
"""

from dataclasses import dataclass, asdict, field
from typing import List, Dict, Optional, Any, Union
from enum import Enum
from datetime import datetime
import dataclasses
import json

from shared.constants import DEFAULT_ALBUM_NAME, DEFAULT_MIME_TYPE, LIBRARY_VERSION


class StorageProvider(Enum):
    """Supported storage backends."""
    LOCAL = "local"
    AWS_S3 = "s3"
    CLOUDFLARE_R2 = "r2"
    GENERIC_S3 = "generic"


class RepeatMode(Enum):
    """How `next` behaves at the end of the queue and per track."""
    NONE = "none"
    ALL = "all"
    ONE = "one"

    def cycle(self) -> 'RepeatMode':
        """none -> all -> one -> none"""
        order = [RepeatMode.NONE, RepeatMode.ALL, RepeatMode.ONE]
        return order[(order.index(self) + 1) % len(order)]


class TransportState(Enum):
    """Playback lifecycle state of the player."""
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"
    ERROR = "error"


@dataclass(frozen=True)
class DirectLocator:
    """
    Bytes served by an external store that handles range requests itself.

    Either `url` is a stored external URL, or `store`/`key` name an object in
    a backend able to mint a URL for it (e.g. a presigned S3 URL).
    """
    url: Optional[str] = None
    store: Optional[str] = None
    key: Optional[str] = None

    kind = "direct"


@dataclass(frozen=True)
class ChunkedLocator:
    """Bytes held in a store the station must proxy byte ranges for."""
    store: str
    key: str

    kind = "chunked"


TrackLocator = Union[DirectLocator, ChunkedLocator]


def locator_to_dict(locator: Optional[TrackLocator]) -> Optional[Dict[str, Any]]:
    if locator is None:
        return None
    data = {k: v for k, v in asdict(locator).items() if v is not None}
    data["kind"] = locator.kind
    return data


def locator_from_dict(data: Optional[Dict[str, Any]]) -> Optional[TrackLocator]:
    """Rebuild a locator from its tagged dict form. Unknown kinds yield None."""
    if not data:
        return None
    kind = data.get("kind")
    if kind == DirectLocator.kind:
        return DirectLocator(url=data.get("url"), store=data.get("store"), key=data.get("key"))
    if kind == ChunkedLocator.kind:
        if not data.get("store") or not data.get("key"):
            return None
        return ChunkedLocator(store=data["store"], key=data["key"])
    return None


@dataclass
class Track:
    """
    Represents a single catalog entry.

    Attributes:
        id: Opaque, stable identifier
        title: Song title
        artist: Artist name
        album: Album name
        duration: Duration in seconds, computed once at ingest
        mime_type: Content type of the audio bytes
        locator: Where the audio bytes live (direct or chunked backend)
        cover_image: Optional cover art URL
        year: Release year (optional)
        genre: Music genre (optional)
        track_number: Track number in album (optional)
        created_at: ISO timestamp of catalog insertion
    """
    id: str
    title: str
    artist: str
    album: str = DEFAULT_ALBUM_NAME
    duration: int = 0
    mime_type: str = DEFAULT_MIME_TYPE
    locator: Optional[TrackLocator] = None
    cover_image: Optional[str] = None
    year: Optional[int] = None
    genre: Optional[str] = None
    track_number: Optional[int] = None
    created_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    def __post_init__(self):
        self.duration = max(0, int(self.duration or 0))
        if not self.album:
            self.album = DEFAULT_ALBUM_NAME

    def to_dict(self) -> Dict[str, Any]:
        """Convert track to dictionary."""
        data = {f.name: getattr(self, f.name) for f in dataclasses.fields(self)}
        data["locator"] = locator_to_dict(self.locator)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Track':
        """Create Track from dictionary, filtering unknown keys."""
        field_names = {f.name for f in dataclasses.fields(cls)}
        filtered_data = {k: v for k, v in data.items() if k in field_names}
        locator = filtered_data.get("locator")
        if isinstance(locator, str):
            locator = json.loads(locator)
        if not isinstance(locator, (DirectLocator, ChunkedLocator)):
            filtered_data["locator"] = locator_from_dict(locator)
        return cls(**filtered_data)


@dataclass
class LibraryMetadata:
    """
    The catalog manifest.

    Serialized to library.json; the station seeds its catalog database
    from it at startup.
    """
    version: int
    tracks: List[Track]
    last_updated: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    def to_json(self, indent: int = 2) -> str:
        data = {
            "version": self.version,
            "tracks": [track.to_dict() for track in self.tracks],
            "last_updated": self.last_updated,
        }
        return json.dumps(data, indent=indent)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LibraryMetadata':
        tracks = [Track.from_dict(t) for t in data.get("tracks", [])]
        try:
            version = int(data.get("version", LIBRARY_VERSION))
        except (ValueError, TypeError):
            version = LIBRARY_VERSION
        return cls(
            version=version,
            tracks=tracks,
            last_updated=data.get("last_updated", datetime.utcnow().isoformat()),
        )

    @classmethod
    def from_json(cls, json_str: str) -> 'LibraryMetadata':
        return cls.from_dict(json.loads(json_str))


def clamp_volume(value: Any, default: float = 1.0) -> float:
    """Coerce to a float volume in [0.0, 1.0]."""
    try:
        volume = float(value)
    except (TypeError, ValueError):
        return default
    if volume != volume:  # NaN
        return default
    return max(0.0, min(1.0, volume))


@dataclass
class PlaybackSnapshot:
    """
    Last-known playback position, persisted per client.

    Attributes:
        track_id: Track that was current
        offset_seconds: Playback position in seconds (never negative)
        volume: Volume in [0.0, 1.0]
        was_playing: Whether audio was playing when the snapshot was taken
        updated_at: Unix timestamp of the snapshot
    """
    track_id: str
    offset_seconds: float = 0.0
    volume: float = 1.0
    was_playing: bool = False
    updated_at: float = 0.0

    def __post_init__(self):
        self.volume = clamp_volume(self.volume)
        try:
            self.offset_seconds = max(0.0, float(self.offset_seconds or 0.0))
        except (TypeError, ValueError):
            self.offset_seconds = 0.0
        self.was_playing = bool(self.was_playing)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional['PlaybackSnapshot']:
        """Build a snapshot from a persisted record; None when it has no track."""
        if not isinstance(data, dict) or not data.get("track_id"):
            return None
        return cls(
            track_id=str(data["track_id"]),
            offset_seconds=data.get("offset_seconds", 0.0),
            volume=data.get("volume", 1.0),
            was_playing=data.get("was_playing", False),
            updated_at=float(data.get("updated_at") or 0.0),
        )
