import asyncio
from unittest.mock import MagicMock

import pytest
import requests
from click.testing import CliRunner

from shared.config import PlayerConfig
from shared.errors import NotFound, StationUnreachable
from shared.models import Track
from player.cli import cli
from player.client import StationClient
from player.library import LibraryManager


def _response(status=200, payload=None):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = payload
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return response


def _client(*responses):
    session = MagicMock()
    session.headers = {}
    session.request.side_effect = list(responses)
    config = PlayerConfig(server_url="http://station:5005/", client_id="desk", state_dir="/tmp")
    return StationClient(config, session=session), session


def test_stream_url_is_built_from_server_url():
    client, _ = _client()
    track = Track(id="a b", title="t", artist="a")
    assert client.stream_url(track) == "http://station:5005/media/a%20b"
    assert client.download_url(track) == "http://station:5005/media/a%20b/download"


def test_identity_headers_are_sent():
    _, session = _client()
    assert session.headers["X-User-Id"] == "desk"
    assert session.headers["X-Client-Id"] == "desk"


def test_search_parses_tracks():
    client, session = _client(_response(payload=[{"id": "1", "title": "Numb", "artist": "LP"}]))
    results = client.search("numb")
    assert [t.title for t in results] == ["Numb"]
    method, url = session.request.call_args[0]
    assert (method, url) == ("GET", "http://station:5005/api/songs/search")
    assert session.request.call_args[1]["params"] == {"q": "numb"}


def test_list_albums_parses_songs():
    client, _ = _client(_response(payload=[
        {"name": "First", "artist": "Band", "song_count": 1, "total_duration": 120,
         "songs": [{"id": "a", "title": "Alpha", "artist": "Band"}]},
    ]))
    albums = client.list_albums()
    assert albums[0]["name"] == "First"
    assert isinstance(albums[0]["songs"][0], Track)


def test_albums_command_renders_listing(monkeypatch, tmp_path):
    monkeypatch.setenv("CADENCE_CONFIG_DIR", str(tmp_path))
    monkeypatch.setattr(StationClient, "list_albums", lambda self: [
        {"name": "First", "artist": "Band", "song_count": 2, "total_duration": 185, "songs": []},
    ])
    result = CliRunner().invoke(cli, ["albums"])
    assert result.exit_code == 0
    assert "First" in result.output
    assert "3:05" in result.output


def test_blank_search_skips_request():
    client, session = _client()
    assert client.search("  ") == []
    session.request.assert_not_called()


def test_errors_are_translated():
    client, _ = _client(_response(status=404), _response(status=500))
    assert client.get_track("missing") is None
    with pytest.raises(StationUnreachable):
        client.record_play("a")


def test_connection_failure_is_unreachable():
    client, session = _client()
    session.request.side_effect = requests.ConnectionError("refused")
    with pytest.raises(StationUnreachable):
        client.list_tracks()


def test_record_play_unknown_track():
    client, _ = _client(_response(status=404))
    with pytest.raises(NotFound):
        client.record_play("zzz")


def test_debounced_search_only_runs_latest_query():
    station = MagicMock()
    station.search.side_effect = lambda q: [Track(id=q, title=q, artist="x")]
    library = LibraryManager(station, debounce=0.05)
    received = []

    async def scenario():
        library.search_debounced("n", received.append)
        library.search_debounced("nu", received.append)
        last = library.search_debounced("numb", received.append)
        await last

    asyncio.run(scenario())
    station.search.assert_called_once_with("numb")
    assert [[t.id for t in batch] for batch in received] == [["numb"]]
