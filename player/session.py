"""
Session persistence for the player.
Periodically snapshots {track, offset, volume, was_playing} to disk and
restores it on the next start.
"""

import logging
import time
from typing import Callable, List, Optional

from shared.constants import DEFAULT_SCOPE, SNAPSHOT_INTERVAL_SEC
from shared.models import PlaybackSnapshot, Track, TransportState
from shared.playback_state import get_state, put_state
from player.engine import PlaybackEngine

logger = logging.getLogger(__name__)


class SessionPersistence:
    """
    Keeps the on-disk snapshot in step with a PlaybackEngine.

    Position updates are written at most once per `interval` seconds;
    settling into playing or paused is written immediately.
    """

    def __init__(self, engine: PlaybackEngine, scope: str = DEFAULT_SCOPE,
                 state_dir: Optional[str] = None, interval: float = SNAPSHOT_INTERVAL_SEC,
                 clock: Callable[[], float] = time.monotonic):
        self.engine = engine
        self.scope = scope
        self.state_dir = state_dir
        self.interval = interval
        self._clock = clock
        self._last_saved: Optional[float] = None
        self._last_state: Optional[TransportState] = None

    def attach(self) -> 'SessionPersistence':
        self.engine.add_time_callback(self._on_time_update)
        self.engine.add_state_callback(self._on_state_change)
        return self

    def _on_time_update(self, position: float) -> None:
        if self.engine.state not in (TransportState.PLAYING, TransportState.PAUSED):
            return
        now = self._clock()
        if self._last_saved is not None and now - self._last_saved < self.interval:
            return
        self.save()

    def _on_state_change(self, engine: PlaybackEngine) -> None:
        state = engine.state
        changed = state != self._last_state
        self._last_state = state
        # Loading has no meaningful position yet; writing it would clobber the resume point
        if changed and state in (TransportState.PLAYING, TransportState.PAUSED):
            self.save()

    def save(self) -> Optional[PlaybackSnapshot]:
        snapshot = self.engine.snapshot()
        if snapshot is None:
            return None
        try:
            stored = put_state(self.scope, snapshot, state_dir=self.state_dir)
        except OSError as e:
            logger.warning("Could not save playback state: %s", e)
            return None
        self._last_saved = self._clock()
        return stored

    def load(self) -> Optional[PlaybackSnapshot]:
        return get_state(self.scope, state_dir=self.state_dir)

    async def restore(self, tracks: List[Track]) -> bool:
        """Resume the saved session if its track is still in `tracks`."""
        snapshot = self.load()
        if snapshot is None:
            return False
        logger.info("Restoring %s at %.0fs", snapshot.track_id, snapshot.offset_seconds)
        return await self.engine.resume(snapshot, tracks)
