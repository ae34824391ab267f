"""
MediaElement backed by python-mpv.
mpv reports events on its own thread; everything is handed to the asyncio
loop before it reaches the engine.
"""

import asyncio
import logging
from typing import Optional

import mpv

from shared.errors import PlaybackStartFailed
from player.media import MediaElement

logger = logging.getLogger(__name__)


class MpvMediaElement(MediaElement):
    """Audio-only mpv player."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        super().__init__()
        self.loop = loop or asyncio.get_event_loop()
        # vo='null' because we are audio-only; the station provides direct URLs
        self.player = mpv.MPV(vo='null', video=False, ytdl=False, idle=True)
        self.player.pause = True
        self._volume = 1.0

        self.player.observe_property('time-pos', self._handle_time_update)
        self.player.register_event_callback(self._handle_event)

    def _post(self, event: str, *args) -> None:
        self.loop.call_soon_threadsafe(self.emit, event, *args)

    # Event handlers (mpv thread)
    def _handle_time_update(self, name, value):
        if value is not None:
            self._post("timeupdate", float(value))

    def _handle_event(self, event):
        event_id = event.event_id
        if event_id == mpv.MpvEventID.FILE_LOADED:
            self._post("metadata")
            self._post("ready")
        elif event_id == mpv.MpvEventID.END_FILE:
            reason = getattr(event.data, 'reason', None)
            if reason == mpv.MpvEventEndFile.EOF:
                self._post("ended")
            elif reason == mpv.MpvEventEndFile.ERROR:
                self._post("error", "mpv could not open the stream")

    # MediaElement
    def _open(self, url: str) -> None:
        self.player.pause = True
        self.player.play(url)

    async def play(self) -> None:
        try:
            self.player.pause = False
        except (mpv.ShutdownError, SystemError) as e:
            raise PlaybackStartFailed(f"mpv refused to play: {e}")

    def pause(self) -> None:
        self.player.pause = True

    def stop(self) -> None:
        self.player.stop()

    @property
    def position(self) -> float:
        return self.player.time_pos or 0.0

    @position.setter
    def position(self, seconds: float) -> None:
        try:
            self.player.seek(seconds, reference='absolute')
        except SystemError as e:
            logger.warning("Seek to %.1fs failed: %s", seconds, e)

    @property
    def duration(self) -> Optional[float]:
        return self.player.duration

    @property
    def volume(self) -> float:
        return self._volume

    @volume.setter
    def volume(self, level: float) -> None:
        self._volume = max(0.0, min(1.0, level))
        self.player.volume = round(self._volume * 100)

    @property
    def muted(self) -> bool:
        return bool(self.player.mute)

    @muted.setter
    def muted(self, value: bool) -> None:
        self.player.mute = bool(value)

    def terminate(self) -> None:
        self.player.terminate()
