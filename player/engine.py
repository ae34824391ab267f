"""
Core playback engine.
Owns the current track, transport state, volume and shuffle/repeat flags,
and drives the media element and the queue in response to user intents and
media events. Runs on a single asyncio loop.
"""

import asyncio
import logging
import random
from typing import Callable, List, Optional, Set

from shared.constants import (
    DEFAULT_VOLUME,
    LOAD_TIMEOUT_SEC,
    SKIP_BUTTON_SEC,
    UNMUTE_DELAY_SEC,
    VOLUME_STEP,
)
from shared.errors import AutoplayBlocked, PlaybackStartFailed
from shared.models import PlaybackSnapshot, RepeatMode, Track, TransportState, clamp_volume
from player.media import MediaElement
from player.queue_manager import QueueManager
from player.queue_policy import Move, Navigation, next_index, previous_index

logger = logging.getLogger(__name__)


class PlaybackEngine:
    """
    Playback state machine.

    Every load bumps a generation counter; async work started for an older
    generation checks it before touching state, so a slow load finishing
    after a newer one can never overwrite the current track.
    """

    def __init__(self, media: MediaElement, client, queue: Optional[QueueManager] = None,
                 load_timeout: float = LOAD_TIMEOUT_SEC, rng: Optional[random.Random] = None):
        self.media = media
        self.client = client
        self.queue = queue or QueueManager()
        self.load_timeout = load_timeout
        self.rng = rng

        # State
        self.current_track: Optional[Track] = None
        self.state = TransportState.IDLE
        self.shuffle = False
        self.repeat_mode = RepeatMode.NONE
        self.volume = DEFAULT_VOLUME
        self.muted = False
        self.last_error: Optional[str] = None

        self._generation = 0
        self._tasks: Set[asyncio.Task] = set()

        # Callbacks
        self._state_callbacks: List[Callable[['PlaybackEngine'], None]] = []
        self._time_callbacks: List[Callable[[float], None]] = []

        self.media.volume = self.volume
        self.media.add_listener("ended", self.handle_ended)
        self.media.add_listener("error", self.handle_media_error)
        self.media.add_listener("timeupdate", self.handle_time_update)

    # --- queries ---

    @property
    def is_playing(self) -> bool:
        return self.state == TransportState.PLAYING

    @property
    def position(self) -> float:
        if self.current_track is None:
            return 0.0
        return self.media.position

    def snapshot(self) -> Optional[PlaybackSnapshot]:
        """Current resume point, None with no current track."""
        if self.current_track is None:
            return None
        return PlaybackSnapshot(
            track_id=self.current_track.id,
            offset_seconds=self.position,
            volume=self.volume,
            was_playing=self.is_playing,
        )

    # --- loading ---

    def _begin_load(self, track: Track, queue: Optional[List[Track]]) -> int:
        if queue is not None:
            self.queue.replace(queue, track)
        else:
            index = self.queue.index_of(track)
            if index >= 0:
                self.queue.set_index(index)

        self._generation += 1
        self.current_track = track
        self.last_error = None
        self._set_state(TransportState.LOADING)
        self.media.load(self.client.stream_url(track))
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def load_track(self, track: Track, queue: Optional[List[Track]] = None) -> bool:
        """
        Make `track` current and start it.

        Waits for the source to become ready, but never longer than
        load_timeout; after that playback is attempted anyway. Returns True
        when this load ended up playing.
        """
        if track is None:
            return False
        generation = self._begin_load(track, queue)

        try:
            try:
                await asyncio.wait_for(self.media.wait_until_ready(), timeout=self.load_timeout)
            except asyncio.TimeoutError:
                logger.warning("%s not ready after %.1fs, starting anyway", track.title, self.load_timeout)
            if not self._is_current(generation):
                return False
            await self.media.play()
        except PlaybackStartFailed as e:
            if not self._is_current(generation):
                logger.debug("Discarding failure of superseded load: %s", e)
                return False
            logger.error("Could not start %s: %s", track.title, e)
            self.last_error = str(e)
            self._set_state(TransportState.ERROR)
            return False

        if not self._is_current(generation):
            return False
        self._set_state(TransportState.PLAYING)
        self._spawn(self._record_play(track))
        return True

    async def _record_play(self, track: Track):
        try:
            await asyncio.to_thread(self.client.record_play, track.id)
        except Exception as e:
            logger.warning("Could not record play of %s: %s", track.id, e)

    async def resume(self, snapshot: PlaybackSnapshot, tracks: List[Track]) -> bool:
        """
        Restore a persisted session.

        The track is reloaded and, once its metadata is known, positioned at
        the saved offset with the saved volume. If it was playing, a muted
        start is attempted and the sound restored shortly after; when even
        that is refused the session stays paused until the user presses play.
        """
        track = next((t for t in tracks if t.id == snapshot.track_id), None)
        if track is None:
            logger.info("Saved track %s is no longer in the catalog", snapshot.track_id)
            return False

        self.set_volume(snapshot.volume)
        generation = self._begin_load(track, tracks)

        try:
            await asyncio.wait_for(self.media.wait_for_metadata(), timeout=self.load_timeout)
        except asyncio.TimeoutError:
            if self._is_current(generation):
                logger.warning("No metadata for %s, leaving it paused", track.title)
                self._set_state(TransportState.PAUSED)
            return False
        except PlaybackStartFailed as e:
            if self._is_current(generation):
                self.last_error = str(e)
                self._set_state(TransportState.ERROR)
            return False
        if not self._is_current(generation):
            return False

        self.media.position = snapshot.offset_seconds
        if not snapshot.was_playing:
            self._set_state(TransportState.PAUSED)
            return True

        self.media.muted = True
        try:
            await self.media.play()
        except PlaybackStartFailed as e:
            self.media.muted = self.muted
            if self._is_current(generation):
                if isinstance(e, AutoplayBlocked):
                    logger.info("Autoplay blocked, press play to continue")
                else:
                    logger.warning("Could not resume %s: %s", track.title, e)
                self._set_state(TransportState.PAUSED)
            return True

        if not self._is_current(generation):
            return False
        self._set_state(TransportState.PLAYING)
        self._spawn(self._unmute_later(generation))
        return True

    async def _unmute_later(self, generation: int):
        await asyncio.sleep(UNMUTE_DELAY_SEC)
        if self._is_current(generation):
            self.media.muted = self.muted
            self.media.volume = self.volume

    # --- transport ---

    async def toggle_play_pause(self) -> None:
        """
        Play/pause button.

        With nothing loaded it starts the queue from the top; after an error
        (or once playback has stopped) it reloads the current track.
        """
        if self.current_track is None:
            first = self.queue.get(0)
            if first is not None:
                await self.load_track(first, self.queue.get_all())
            return

        if self.state == TransportState.PLAYING:
            self.media.pause()
            self._set_state(TransportState.PAUSED)
        elif self.state == TransportState.PAUSED:
            try:
                await self.media.play()
            except PlaybackStartFailed as e:
                logger.error("Could not resume %s: %s", self.current_track.title, e)
                self.last_error = str(e)
                self._set_state(TransportState.ERROR)
                return
            self.media.muted = self.muted
            self._set_state(TransportState.PLAYING)
        elif self.state in (TransportState.ERROR, TransportState.IDLE, TransportState.ENDED):
            await self.load_track(self.current_track)

    def stop(self) -> None:
        self._generation += 1
        self.media.stop()
        self._set_state(TransportState.IDLE)

    def seek(self, offset_seconds: float) -> Optional[float]:
        """
        Jump to an absolute position; a no-op unless playing or paused.
        Clamped to the live duration, or the stored one before it is known.
        """
        if self.state not in (TransportState.PLAYING, TransportState.PAUSED):
            return None
        limit = self.media.duration or self.current_track.duration
        target = max(0.0, float(offset_seconds))
        if limit:
            target = min(target, float(limit))
        self.media.position = target
        return target

    def skip_relative(self, delta_seconds: float = SKIP_BUTTON_SEC) -> Optional[float]:
        if self.state not in (TransportState.PLAYING, TransportState.PAUSED):
            return None
        return self.seek(self.media.position + delta_seconds)

    # --- navigation ---

    async def next(self) -> bool:
        navigation = next_index(len(self.queue), self.queue.index, self.shuffle, self.repeat_mode, self.rng)
        return await self._navigate(navigation, resume=True)

    async def previous(self) -> bool:
        navigation = previous_index(len(self.queue), self.queue.index, self.position)
        return await self._navigate(navigation, resume=False)

    async def _navigate(self, navigation: Navigation, resume: bool) -> bool:
        if navigation.move == Move.INDEX:
            track = self.queue.set_index(navigation.index)
            return await self.load_track(track)

        elif navigation.move == Move.RESTART:
            if self.current_track is None:
                return False
            if self.state in (TransportState.ENDED, TransportState.IDLE, TransportState.ERROR):
                return await self.load_track(self.current_track)
            self.media.position = 0.0
            if resume and self.state == TransportState.PAUSED:
                await self.toggle_play_pause()
            return True

        elif navigation.move == Move.TERMINAL:
            # Skipping past the last track leaves the current one untouched
            if self.state == TransportState.ENDED:
                logger.info("End of queue")
                self._set_state(TransportState.IDLE)
            return False

        return False

    # --- media events ---

    def handle_ended(self) -> None:
        if self.state != TransportState.PLAYING:
            return
        self._set_state(TransportState.ENDED)
        self._spawn(self.next())

    def handle_media_error(self, message: str = "media error") -> None:
        # A load in progress turns this into its own failure
        if self.state in (TransportState.PLAYING, TransportState.PAUSED):
            logger.error("Stream failed: %s", message)
            self.last_error = message
            self._set_state(TransportState.ERROR)

    def handle_time_update(self, position: float) -> None:
        for callback in list(self._time_callbacks):
            try:
                callback(position)
            except Exception as e:
                logger.error("Error in time update callback: %s", e)

    # --- flags ---

    def set_shuffle(self, enabled: bool) -> None:
        self.shuffle = bool(enabled)
        self._notify()

    def toggle_shuffle(self) -> bool:
        self.set_shuffle(not self.shuffle)
        return self.shuffle

    def cycle_repeat_mode(self) -> RepeatMode:
        self.repeat_mode = self.repeat_mode.cycle()
        self._notify()
        return self.repeat_mode

    # --- volume ---

    def set_volume(self, level: float) -> float:
        """Set volume in [0, 1]; moving the volume also unmutes."""
        self.volume = clamp_volume(level, default=self.volume)
        self.muted = False
        self.media.muted = False
        self.media.volume = self.volume
        self._notify()
        return self.volume

    def change_volume(self, delta: float = VOLUME_STEP) -> float:
        return self.set_volume(round(self.volume + delta, 2))

    def toggle_mute(self) -> bool:
        """Mute keeps the chosen volume so unmuting restores it."""
        self.muted = not self.muted
        self.media.muted = self.muted
        self._notify()
        return self.muted

    # --- callbacks ---

    def add_state_callback(self, callback: Callable[['PlaybackEngine'], None]) -> None:
        if callback not in self._state_callbacks:
            self._state_callbacks.append(callback)

    def add_time_callback(self, callback: Callable[[float], None]) -> None:
        if callback not in self._time_callbacks:
            self._time_callbacks.append(callback)

    def _set_state(self, state: TransportState) -> None:
        if state != self.state:
            logger.debug("Transport %s -> %s", self.state.value, state.value)
            self.state = state
        self._notify()

    def _notify(self) -> None:
        for callback in list(self._state_callbacks):
            try:
                callback(self)
            except Exception as e:
                logger.error("Error in state change callback: %s", e)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for background work (history writes, auto-advance) to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
