"""
The media element the playback engine drives.

Mirrors the small surface of an HTML audio element: a source is loaded,
readiness and metadata are awaited, playback is started or paused, and
position/volume/mute are properties. Events ('timeupdate', 'ended',
'error', 'metadata', 'ready') are delivered on the event loop.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from shared.errors import PlaybackStartFailed

logger = logging.getLogger(__name__)

EVENTS = ("timeupdate", "ended", "error", "metadata", "ready")


class MediaElement(ABC):
    """Abstract audio output used by PlaybackEngine."""

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {name: [] for name in EVENTS}
        self._ready: Optional[asyncio.Future] = None
        self._metadata: Optional[asyncio.Future] = None

    # --- events ---

    def add_listener(self, event: str, callback: Callable) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unknown media event: {event}")
        if callback not in self._listeners[event]:
            self._listeners[event].append(callback)

    def emit(self, event: str, *args) -> None:
        """Dispatch an event; must be called from the event loop thread."""
        if event in ("ready", "metadata", "error"):
            self._settle(event, *args)
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(*args)
            except Exception as e:
                logger.error("Error in media %s listener: %s", event, e)

    def _settle(self, event: str, *args) -> None:
        if event == "error":
            error = PlaybackStartFailed(args[0] if args else "media error")
            for future in (self._ready, self._metadata):
                if future is not None and not future.done():
                    future.set_exception(error)
                    future.exception()
            return
        if self._metadata is not None and not self._metadata.done():
            self._metadata.set_result(None)
        if event == "ready" and self._ready is not None and not self._ready.done():
            self._ready.set_result(None)

    # --- source loading ---

    def load(self, url: str) -> None:
        """Point the element at a new source; readiness is awaited separately."""
        loop = asyncio.get_running_loop()
        for future in (self._ready, self._metadata):
            if future is not None and not future.done():
                future.set_exception(PlaybackStartFailed("superseded by a newer source"))
                future.exception()
        self._ready = loop.create_future()
        self._metadata = loop.create_future()
        self._open(url)

    async def wait_until_ready(self) -> None:
        """Resolve once the source can start playing; raise PlaybackStartFailed on error."""
        if self._ready is None:
            raise RuntimeError("No source loaded")
        await asyncio.shield(self._ready)

    async def wait_for_metadata(self) -> None:
        """Resolve once duration and seeking are available."""
        if self._metadata is None:
            raise RuntimeError("No source loaded")
        await asyncio.shield(self._metadata)

    @abstractmethod
    def _open(self, url: str) -> None:
        pass

    # --- transport ---

    @abstractmethod
    async def play(self) -> None:
        """
        Start or resume playback.

        Raises:
            AutoplayBlocked: The host refused to start audio without a user gesture
            PlaybackStartFailed: The source could not be played
        """
        pass

    @abstractmethod
    def pause(self) -> None:
        pass

    @abstractmethod
    def stop(self) -> None:
        pass

    @property
    @abstractmethod
    def position(self) -> float:
        pass

    @position.setter
    @abstractmethod
    def position(self, seconds: float) -> None:
        pass

    @property
    @abstractmethod
    def duration(self) -> Optional[float]:
        """Live duration reported by the source, None until known."""
        pass

    @property
    @abstractmethod
    def volume(self) -> float:
        pass

    @volume.setter
    @abstractmethod
    def volume(self, level: float) -> None:
        pass

    @property
    @abstractmethod
    def muted(self) -> bool:
        pass

    @muted.setter
    @abstractmethod
    def muted(self, value: bool) -> None:
        pass
