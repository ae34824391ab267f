import asyncio
from typing import List, Optional

import pytest

from shared.errors import AutoplayBlocked
from shared.models import Track
from player.media import MediaElement


class ScriptedMedia(MediaElement):
    """
    In-memory media element.

    Sources listed in `ready_on_load` become ready as soon as they load;
    others wait for the test to call `emit`. `play_error` makes the next
    play() calls fail with that exception.
    """

    def __init__(self):
        super().__init__()
        self.ready_on_load = True
        self.play_error: Optional[Exception] = None
        self.muted_play_error: Optional[Exception] = None
        self.loaded: List[str] = []
        self.playing = False
        self._position = 0.0
        self._duration: Optional[float] = None
        self._volume = 1.0
        self._muted = False
        self.mute_history: List[bool] = []

    def _open(self, url):
        self.loaded.append(url)
        self.playing = False
        self._position = 0.0
        self._duration = None
        if self.ready_on_load:
            asyncio.get_running_loop().call_soon(self.make_ready, 200.0)

    def make_ready(self, duration=200.0):
        self._duration = duration
        self.emit("metadata")
        self.emit("ready")

    async def play(self):
        if self._muted and self.muted_play_error is not None:
            raise self.muted_play_error
        if self.play_error is not None:
            raise self.play_error
        self.playing = True

    def pause(self):
        self.playing = False

    def stop(self):
        self.playing = False

    @property
    def position(self):
        return self._position

    @position.setter
    def position(self, seconds):
        self._position = seconds

    @property
    def duration(self):
        return self._duration

    @property
    def volume(self):
        return self._volume

    @volume.setter
    def volume(self, level):
        self._volume = level

    @property
    def muted(self):
        return self._muted

    @muted.setter
    def muted(self, value):
        self._muted = value
        self.mute_history.append(value)


class FakeStationClient:
    def __init__(self):
        self.played: List[str] = []
        self.fail_record = False

    def stream_url(self, track):
        return f"http://station/media/{track.id}"

    def record_play(self, track_id):
        if self.fail_record:
            raise ConnectionError("history service down")
        self.played.append(track_id)


@pytest.fixture
def media():
    return ScriptedMedia()


@pytest.fixture
def station():
    return FakeStationClient()


@pytest.fixture
def tracks():
    return [
        Track(id="A", title="A", artist="x", duration=180),
        Track(id="B", title="B", artist="x", duration=200),
        Track(id="C", title="C", artist="x", duration=90),
    ]


@pytest.fixture
def autoplay_blocked():
    return AutoplayBlocked("user gesture required")
