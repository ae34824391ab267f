from shared.config import PlayerConfig, ServerConfig
from shared.models import (
    ChunkedLocator,
    DirectLocator,
    PlaybackSnapshot,
    RepeatMode,
    Track,
    clamp_volume,
    locator_from_dict,
)


def test_track_defaults_and_duration_clamp():
    track = Track(id="1", title="t", artist="a", album="", duration=-5)
    assert track.album == "Unknown Album"
    assert track.duration == 0
    assert track.mime_type == "audio/flac"


def test_track_from_dict_ignores_unknown_keys():
    track = Track.from_dict({
        "id": "1", "title": "t", "artist": "a", "duration": "181",
        "_id": "legacy", "gridfsId": "abc",
        "locator": {"kind": "chunked", "store": "local", "key": "1.flac"},
    })
    assert track.duration == 181
    assert isinstance(track.locator, ChunkedLocator)


def test_locator_from_dict_rejects_incomplete_or_unknown():
    assert locator_from_dict({"kind": "chunked", "store": "local"}) is None
    assert locator_from_dict({"kind": "tape"}) is None
    assert locator_from_dict(None) is None
    assert locator_from_dict({"kind": "direct", "store": "s3", "key": "k"}) == DirectLocator(store="s3", key="k")


def test_repeat_mode_cycles():
    assert RepeatMode.NONE.cycle() == RepeatMode.ALL
    assert RepeatMode.ALL.cycle() == RepeatMode.ONE
    assert RepeatMode.ONE.cycle() == RepeatMode.NONE


def test_clamp_volume():
    assert clamp_volume(-1) == 0.0
    assert clamp_volume(2) == 1.0
    assert clamp_volume("0.25") == 0.25
    assert clamp_volume("loud", default=0.7) == 0.7


def test_snapshot_from_dict_requires_track():
    assert PlaybackSnapshot.from_dict({"offset_seconds": 3}) is None
    assert PlaybackSnapshot.from_dict("nope") is None


def test_config_env_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("CADENCE_CONFIG_DIR", str(tmp_path))
    monkeypatch.setenv("CADENCE_PORT", "6000")
    monkeypatch.setenv("CADENCE_DEBUG", "true")
    monkeypatch.setenv("CADENCE_S3_BUCKET", "music")
    (tmp_path / "server.json").write_text('{"host": "127.0.0.1", "port": 5999, "unknown": 1}')

    config = ServerConfig.from_env()
    assert config.host == "127.0.0.1"
    assert config.port == 6000
    assert config.debug is True
    assert config.s3_bucket == "music"
    assert config.database_path == str(tmp_path / "catalog.db")


def test_player_config_trims_server_url(monkeypatch, tmp_path):
    monkeypatch.setenv("CADENCE_CONFIG_DIR", str(tmp_path))
    monkeypatch.setenv("CADENCE_SERVER_URL", "http://station:5005/")
    config = PlayerConfig.from_env()
    assert config.server_url == "http://station:5005"
    assert config.state_dir == str(tmp_path)
