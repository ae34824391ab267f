"""
HTTP API for the Cadence station.
Serves audio through the streaming gateway plus the catalog, recently played
and playback-state endpoints the players use.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import click
from flask import Flask, Response, jsonify, redirect, request, stream_with_context
from flask_cors import CORS

from shared.config import ServerConfig, setup_logging
from shared.constants import DEFAULT_SCOPE
from shared.database import DatabaseManager
from shared.errors import CadenceError, NotFound
from shared.gateway import StreamResponse, StreamingGateway
from shared.playback_state import (
    clear_state as clear_playback_state,
    get_state as get_playback_state,
    put_state as put_playback_state,
)
from storage.provider_factory import build_backends

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"
CLIENT_HEADER = "X-Client-Id"

app = Flask(__name__)
CORS(
    app,
    allow_headers=["Range", "Content-Type", USER_HEADER, CLIENT_HEADER],
    expose_headers=["Content-Range", "Content-Length", "Accept-Ranges", "Content-Disposition"],
)


@dataclass
class StationCore:
    catalog: DatabaseManager
    gateway: StreamingGateway
    state_dir: Optional[str] = None


_core: Optional[StationCore] = None


def build_core(config: ServerConfig) -> StationCore:
    """Open the catalog, seed it from the manifest and connect the stores."""
    catalog = DatabaseManager(config.database_path)
    catalog.sync_from_file(config.library_path)
    backends = build_backends(config)
    if not backends:
        logger.warning("No storage backends configured; only direct URLs will play")
    return StationCore(
        catalog=catalog,
        gateway=StreamingGateway(catalog, backends),
        state_dir=str(Path(config.database_path).parent),
    )


def init_core(core: Optional[StationCore]) -> None:
    global _core
    _core = core


def get_core() -> StationCore:
    global _core
    if _core is None:
        logger.info("Initializing station core...")
        _core = build_core(ServerConfig.from_env())
    return _core


def get_user_from_request() -> str:
    """Authentication lives upstream; it forwards the user id in a header."""
    return request.headers.get(USER_HEADER) or DEFAULT_SCOPE


def get_scope_from_request() -> str:
    return request.headers.get(CLIENT_HEADER) or get_user_from_request()


def _render(result: StreamResponse):
    if result.error:
        return jsonify({"error": result.error}), result.status
    if result.status in (301, 302, 303, 307):
        return redirect(result.location, code=result.status)
    if result.body is None:
        return Response(status=result.status, headers=result.headers)
    return Response(
        stream_with_context(result.body),
        status=result.status,
        headers=result.headers,
        direct_passthrough=True,
    )


@app.errorhandler(NotFound)
def handle_not_found(e):
    return jsonify({"error": str(e)}), 404


@app.errorhandler(CadenceError)
def handle_cadence_error(e):
    logger.error("Request failed: %s", e)
    return jsonify({"error": str(e)}), 500


@app.route('/api/health')
def health_check():
    return jsonify({"status": "healthy"})


@app.route('/')
def home():
    return jsonify({
        "status": "online",
        "service": "Cadence Station API",
        "version": "1.0.0"
    })


# --- Media Endpoints ---

@app.route('/media/<track_id>', methods=['GET'])
def stream_track(track_id):
    """Stream a track; honours Range for proxied stores, redirects for direct ones."""
    core = get_core()
    result = core.gateway.stream(track_id, request.headers.get('Range'))
    logger.debug("Stream %s range=%s -> %s", track_id, request.headers.get('Range'), result.status)
    return _render(result)


@app.route('/media/<track_id>/download', methods=['GET'])
def download_track(track_id):
    core = get_core()
    return _render(core.gateway.download(track_id))


# --- Catalog Endpoints ---

@app.route('/api/songs', methods=['GET'])
def list_songs():
    core = get_core()
    return jsonify([t.to_dict() for t in core.catalog.get_all_tracks()])


@app.route('/api/songs/search', methods=['GET'])
def search_songs():
    core = get_core()
    query = request.args.get('q', '')
    return jsonify([t.to_dict() for t in core.catalog.find_tracks_matching(query)])


@app.route('/api/songs/albums', methods=['GET'])
def list_albums():
    core = get_core()
    albums = core.catalog.get_albums()
    return jsonify([
        {**album, "songs": [t.to_dict() for t in album["songs"]]}
        for album in albums
    ])


@app.route('/api/songs/<track_id>', methods=['GET'])
def get_song(track_id):
    core = get_core()
    track = core.catalog.find_track_by_id(track_id)
    if not track:
        return jsonify({"error": "Track not found"}), 404
    return jsonify(track.to_dict())


# --- Recently Played ---

@app.route('/api/recently-played/<track_id>', methods=['POST'])
def add_recently_played(track_id):
    core = get_core()
    if not core.catalog.find_track_by_id(track_id):
        return jsonify({"error": "Track not found"}), 404
    core.catalog.record_play(get_user_from_request(), track_id)
    return jsonify({"status": "ok"})


@app.route('/api/recently-played', methods=['GET'])
def list_recently_played():
    core = get_core()
    tracks = core.catalog.get_recently_played(get_user_from_request())
    return jsonify([t.to_dict() for t in tracks])


# --- Playback State ---

@app.route('/api/playback/state', methods=['GET'])
def playback_get_state():
    """Return the last snapshot for this client scope, 204 when there is none."""
    core = get_core()
    snapshot = get_playback_state(get_scope_from_request(), state_dir=core.state_dir)
    if not snapshot:
        return '', 204
    return jsonify(snapshot.to_dict())


@app.route('/api/playback/state', methods=['PUT'])
def playback_put_state():
    core = get_core()
    data = request.get_json(silent=True) or {}
    stored = put_playback_state(get_scope_from_request(), data, state_dir=core.state_dir)
    if stored is None:
        return jsonify({"error": "track_id required"}), 400
    return jsonify(stored.to_dict())


@app.route('/api/playback/state', methods=['DELETE'])
def playback_clear_state():
    clear_playback_state(get_scope_from_request(), state_dir=get_core().state_dir)
    return '', 204


# --- Server Management ---

def start_api(config: Optional[ServerConfig] = None, port: Optional[int] = None, debug: Optional[bool] = None):
    config = config or ServerConfig.from_env()
    port = port or config.port
    debug = config.debug if debug is None else debug

    if _core is None:
        init_core(build_core(config))
    logger.info("Cadence station online at http://%s:%s/", config.host, port)
    app.run(host=config.host, port=port, debug=debug, threaded=True)


@click.command()
@click.option('--port', type=int, default=None, help='Port to listen on.')
@click.option('--debug', is_flag=True, default=False, help='Run Flask in debug mode.')
def main(port, debug):
    """Run the Cadence streaming station."""
    config = ServerConfig.from_env()
    setup_logging(config.log_level)
    try:
        start_api(config, port=port, debug=debug or None)
    except CadenceError as e:
        raise click.ClickException(str(e))


if __name__ == '__main__':
    main()
