import asyncio
import random

from shared.errors import PlaybackStartFailed
from shared.models import PlaybackSnapshot, RepeatMode, TransportState
from player.engine import PlaybackEngine


def _run(coro):
    return asyncio.run(coro)


def test_load_track_plays_and_records_history(media, station, tracks):
    async def scenario():
        engine = PlaybackEngine(media, station)
        assert await engine.load_track(tracks[1], tracks)
        await engine.drain()
        return engine

    engine = _run(scenario())
    assert engine.state == TransportState.PLAYING
    assert engine.current_track.id == "B"
    assert engine.queue.index == 1
    assert media.loaded == ["http://station/media/B"]
    assert media.playing
    assert station.played == ["B"]


def test_load_timeout_attempts_playback_anyway(media, station, tracks):
    media.ready_on_load = False

    async def scenario():
        engine = PlaybackEngine(media, station, load_timeout=0.01)
        ok = await engine.load_track(tracks[0], tracks)
        await engine.drain()
        return engine, ok

    engine, ok = _run(scenario())
    assert ok
    assert engine.state == TransportState.PLAYING


def test_failed_start_enters_error_without_history(media, station, tracks):
    media.play_error = PlaybackStartFailed("decoder refused")

    async def scenario():
        engine = PlaybackEngine(media, station)
        ok = await engine.load_track(tracks[0], tracks)
        await engine.drain()
        return engine, ok

    engine, ok = _run(scenario())
    assert not ok
    assert engine.state == TransportState.ERROR
    assert not engine.is_playing
    assert engine.last_error == "decoder refused"
    assert station.played == []


def test_media_error_while_loading_is_a_load_failure(media, station, tracks):
    media.ready_on_load = False

    async def scenario():
        engine = PlaybackEngine(media, station)
        task = asyncio.ensure_future(engine.load_track(tracks[0], tracks))
        await asyncio.sleep(0)
        media.emit("error", "404 from station")
        return engine, await task

    engine, ok = _run(scenario())
    assert not ok
    assert engine.state == TransportState.ERROR


def test_history_failure_does_not_affect_playback(media, station, tracks):
    station.fail_record = True

    async def scenario():
        engine = PlaybackEngine(media, station)
        ok = await engine.load_track(tracks[0], tracks)
        await engine.drain()
        return engine, ok

    engine, ok = _run(scenario())
    assert ok
    assert engine.state == TransportState.PLAYING


def test_newer_load_supersedes_pending_one(media, station, tracks):
    media.ready_on_load = False

    async def scenario():
        engine = PlaybackEngine(media, station)
        first = asyncio.ensure_future(engine.load_track(tracks[0], tracks))
        await asyncio.sleep(0)
        second = asyncio.ensure_future(engine.load_track(tracks[1]))
        await asyncio.sleep(0)
        media.make_ready()
        results = (await first, await second)
        await engine.drain()
        return engine, results

    engine, (first_ok, second_ok) = _run(scenario())
    assert not first_ok
    assert second_ok
    assert engine.current_track.id == "B"
    assert engine.queue.index == 1
    assert engine.state == TransportState.PLAYING
    assert station.played == ["B"]


def test_ended_at_last_track_goes_idle(media, station, tracks):
    async def scenario():
        engine = PlaybackEngine(media, station)
        await engine.load_track(tracks[2], tracks)
        media.emit("ended")
        await engine.drain()
        return engine

    engine = _run(scenario())
    assert engine.state == TransportState.IDLE
    assert len(media.loaded) == 1


def test_next_past_last_track_keeps_current_playing(media, station, tracks):
    async def scenario():
        engine = PlaybackEngine(media, station)
        await engine.load_track(tracks[2], tracks)
        media.position = 30.0
        moved = await engine.next()
        snapshot = engine.snapshot()
        await engine.toggle_play_pause()
        return engine, moved, snapshot

    engine, moved, snapshot = _run(scenario())
    assert not moved
    assert engine.current_track.id == "C"
    assert snapshot.was_playing
    assert snapshot.offset_seconds == 30.0
    # play/pause still acts on the running track rather than reloading it
    assert engine.state == TransportState.PAUSED
    assert not media.playing
    assert len(media.loaded) == 1


def test_ended_with_repeat_all_wraps_to_first(media, station, tracks):
    async def scenario():
        engine = PlaybackEngine(media, station)
        engine.cycle_repeat_mode()
        await engine.load_track(tracks[2], tracks)
        media.emit("ended")
        await engine.drain()
        return engine

    engine = _run(scenario())
    assert engine.repeat_mode == RepeatMode.ALL
    assert engine.current_track.id == "A"
    assert engine.queue.index == 0
    assert engine.state == TransportState.PLAYING


def test_ended_with_repeat_one_replays_current(media, station, tracks):
    async def scenario():
        engine = PlaybackEngine(media, station)
        engine.repeat_mode = RepeatMode.ONE
        await engine.load_track(tracks[0], tracks)
        media.emit("ended")
        await engine.drain()
        return engine

    engine = _run(scenario())
    assert engine.current_track.id == "A"
    assert media.loaded == ["http://station/media/A", "http://station/media/A"]
    assert engine.state == TransportState.PLAYING


def test_next_with_shuffle_uses_rng(media, station, tracks):
    async def scenario():
        engine = PlaybackEngine(media, station, rng=random.Random(3))
        engine.set_shuffle(True)
        await engine.load_track(tracks[0], tracks)
        await engine.next()
        return engine

    engine = _run(scenario())
    expected = random.Random(3).randrange(3)
    assert engine.queue.index == expected


def test_previous_restarts_after_threshold(media, station, tracks):
    async def scenario():
        engine = PlaybackEngine(media, station)
        await engine.load_track(tracks[1], tracks)
        media.position = 42.0
        await engine.previous()
        return engine

    engine = _run(scenario())
    assert engine.current_track.id == "B"
    assert media.position == 0.0
    assert len(media.loaded) == 1


def test_previous_early_goes_back_and_wraps(media, station, tracks):
    async def scenario():
        engine = PlaybackEngine(media, station)
        await engine.load_track(tracks[0], tracks)
        media.position = 1.0
        await engine.previous()
        return engine

    engine = _run(scenario())
    assert engine.current_track.id == "C"
    assert engine.queue.index == 2


def test_seek_clamps_to_live_then_stored_duration(media, station, tracks):
    async def scenario():
        engine = PlaybackEngine(media, station)
        assert engine.seek(10) is None
        await engine.load_track(tracks[0], tracks)
        results = [engine.seek(500), engine.seek(-5)]
        media._duration = None
        results.append(engine.seek(500))
        media.position = 170.0
        results.append(engine.skip_relative(30))
        return results

    assert _run(scenario()) == [200.0, 0.0, 180.0, 180.0]


def test_toggle_play_pause(media, station, tracks):
    async def scenario():
        engine = PlaybackEngine(media, station)
        engine.queue.replace(tracks)
        await engine.toggle_play_pause()
        states = [engine.state, engine.current_track.id]
        await engine.toggle_play_pause()
        states.append(engine.state)
        await engine.toggle_play_pause()
        states.append(engine.state)
        return states

    assert _run(scenario()) == [TransportState.PLAYING, "A", TransportState.PAUSED, TransportState.PLAYING]


def test_play_after_error_retries_current_track(media, station, tracks):
    media.play_error = PlaybackStartFailed("network")

    async def scenario():
        engine = PlaybackEngine(media, station)
        await engine.load_track(tracks[0], tracks)
        assert engine.state == TransportState.ERROR
        media.play_error = None
        await engine.toggle_play_pause()
        return engine

    engine = _run(scenario())
    assert engine.state == TransportState.PLAYING
    assert len(media.loaded) == 2


def test_stream_error_while_playing(media, station, tracks):
    async def scenario():
        engine = PlaybackEngine(media, station)
        await engine.load_track(tracks[0], tracks)
        media.emit("error", "connection reset")
        return engine

    engine = _run(scenario())
    assert engine.state == TransportState.ERROR


def test_volume_and_mute(media, station):
    engine = PlaybackEngine(media, station)
    assert media.volume == 0.7
    assert engine.set_volume(1.5) == 1.0
    assert engine.change_volume(-0.1) == 0.9
    assert engine.set_volume(float("nan")) == 0.9

    assert engine.toggle_mute()
    assert media.muted
    assert engine.volume == 0.9
    assert not engine.toggle_mute()
    assert not media.muted

    engine.toggle_mute()
    engine.change_volume(0.1)
    assert not engine.muted
    assert media.volume == 1.0


def test_flags_do_not_touch_transport(media, station):
    engine = PlaybackEngine(media, station)
    modes = [engine.cycle_repeat_mode() for _ in range(3)]
    assert modes == [RepeatMode.ALL, RepeatMode.ONE, RepeatMode.NONE]
    assert engine.toggle_shuffle()
    assert not engine.toggle_shuffle()
    assert engine.state == TransportState.IDLE


def test_resume_restores_position_volume_and_unmutes(media, station, tracks):
    snapshot = PlaybackSnapshot(track_id="B", offset_seconds=42, volume=0.5, was_playing=True)

    async def scenario():
        engine = PlaybackEngine(media, station)
        ok = await engine.resume(snapshot, tracks)
        await engine.drain()
        return engine, ok

    engine, ok = _run(scenario())
    assert ok
    assert engine.current_track.id == "B"
    assert engine.queue.index == 1
    assert media.position == 42
    assert media.volume == 0.5
    assert engine.state == TransportState.PLAYING
    assert media.mute_history[-2:] == [True, False]


def test_resume_blocked_autoplay_stays_paused(media, station, tracks, autoplay_blocked):
    media.muted_play_error = autoplay_blocked
    snapshot = PlaybackSnapshot(track_id="B", offset_seconds=42, volume=0.5, was_playing=True)

    async def scenario():
        engine = PlaybackEngine(media, station)
        ok = await engine.resume(snapshot, tracks)
        return engine, ok

    engine, ok = _run(scenario())
    assert ok
    assert engine.state == TransportState.PAUSED
    assert not media.muted
    assert media.position == 42


def test_resume_paused_session_does_not_play(media, station, tracks):
    snapshot = PlaybackSnapshot(track_id="C", offset_seconds=5, volume=0.2, was_playing=False)

    async def scenario():
        engine = PlaybackEngine(media, station)
        return engine, await engine.resume(snapshot, tracks)

    engine, ok = _run(scenario())
    assert ok
    assert engine.state == TransportState.PAUSED
    assert not media.playing
    assert media.position == 5


def test_resume_skips_tracks_no_longer_in_catalog(media, station, tracks):
    snapshot = PlaybackSnapshot(track_id="gone", offset_seconds=5)

    async def scenario():
        engine = PlaybackEngine(media, station)
        return engine, await engine.resume(snapshot, tracks)

    engine, ok = _run(scenario())
    assert not ok
    assert engine.state == TransportState.IDLE
    assert media.loaded == []
