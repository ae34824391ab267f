"""
Error taxonomy shared by the station (server) and the player (client).

Storage backends raise these instead of library exceptions; the streaming
gateway turns them into HTTP outcomes and the playback engine turns the
client-side ones into transport state.
"""

from typing import Optional


class CadenceError(Exception):
    """Base class for all platform errors."""


class NotFound(CadenceError):
    """Unknown track, or a track with no backing bytes."""


class RangeNotSatisfiable(CadenceError):
    """The requested byte range lies outside the object."""

    def __init__(self, file_size: int, message: Optional[str] = None):
        super().__init__(message or f"Range not satisfiable for object of {file_size} bytes")
        self.file_size = file_size


class StorageUnavailable(CadenceError):
    """A storage backend is unreachable or refused the request."""


class StorageNotConfigured(StorageUnavailable):
    """A track points at a store this station has no configuration for."""


class PlaybackStartFailed(CadenceError):
    """The media element refused or errored while starting a stream."""


class AutoplayBlocked(PlaybackStartFailed):
    """Playback was refused by host policy; an explicit user action can recover."""


class StationUnreachable(CadenceError):
    """The player could not talk to the station's HTTP API."""
