import asyncio

from shared.models import PlaybackSnapshot, RepeatMode, TransportState
from player.controls import QUIT, drive, handle_key, split_keys
from player.engine import PlaybackEngine


def test_split_keys_handles_arrows_and_bursts():
    assert split_keys(" ") == ["space"]
    assert split_keys("\x1b[A\x1b[D") == ["up", "left"]
    assert split_keys("nN") == ["n", "n"]
    assert split_keys("") == []


def test_keys_drive_engine_intents(media, station, tracks):
    async def scenario():
        engine = PlaybackEngine(media, station)
        await engine.load_track(tracks[0], tracks)
        media.position = 20.0
        await handle_key(engine, "right")
        forward = media.position
        await handle_key(engine, "left")
        await handle_key(engine, "left")
        back = media.position
        await handle_key(engine, "down")
        await handle_key(engine, "m")
        await handle_key(engine, "r")
        await handle_key(engine, "s")
        await handle_key(engine, "n")
        return engine, forward, back, await handle_key(engine, "q")

    engine, forward, back, result = asyncio.run(scenario())
    assert forward == 25.0
    assert back == 15.0
    assert engine.volume == 0.6
    assert engine.muted
    assert engine.repeat_mode == RepeatMode.ALL
    assert engine.shuffle
    assert len(media.loaded) == 2
    assert result == QUIT


def test_space_resumes_restored_paused_session(media, station, tracks):
    snapshot = PlaybackSnapshot(track_id="B", offset_seconds=42, volume=0.5, was_playing=False)

    async def scenario():
        engine = PlaybackEngine(media, station)
        await engine.resume(snapshot, tracks)
        keys = asyncio.Queue()
        for key in ("space", "q"):
            keys.put_nowait(key)
        states = []
        await drive(engine, keys, True, lambda: states.append(engine.state), tick=0.01)
        return engine, states

    engine, states = asyncio.run(scenario())
    assert states[0] == TransportState.PAUSED
    assert engine.state == TransportState.PLAYING
    assert media.playing
    assert media.position == 42


def test_paused_session_without_keyboard_ends(media, station, tracks):
    snapshot = PlaybackSnapshot(track_id="B", offset_seconds=42, was_playing=False)

    async def scenario():
        engine = PlaybackEngine(media, station)
        await engine.resume(snapshot, tracks)
        await asyncio.wait_for(drive(engine, asyncio.Queue(), False, lambda: None, tick=0.01), timeout=1)
        return engine

    assert asyncio.run(scenario()).state == TransportState.PAUSED


def test_drive_stops_at_end_of_queue(media, station, tracks):
    async def scenario():
        engine = PlaybackEngine(media, station)
        await engine.load_track(tracks[2], tracks)
        media.emit("ended")
        await engine.drain()
        await asyncio.wait_for(drive(engine, asyncio.Queue(), True, lambda: None, tick=0.01), timeout=1)
        return engine

    assert asyncio.run(scenario()).state == TransportState.IDLE
