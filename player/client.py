"""
HTTP client for the Cadence station API.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from shared.config import PlayerConfig
from shared.errors import NotFound, StationUnreachable
from shared.models import Track

logger = logging.getLogger(__name__)


class StationClient:
    """Thin wrapper over the station's catalog, history and media routes."""

    def __init__(self, config: Optional[PlayerConfig] = None, session: Optional[requests.Session] = None):
        self.config = config or PlayerConfig.from_env()
        self.base_url = self.config.server_url.rstrip("/")
        self.timeout = self.config.request_timeout

        self._session = session or requests.Session()
        adapter = requests.adapters.HTTPAdapter(pool_connections=4, pool_maxsize=4, max_retries=3)
        self._session.mount('https://', adapter)
        self._session.mount('http://', adapter)
        self._session.headers.update({
            "X-User-Id": self.config.client_id,
            "X-Client-Id": self.config.client_id,
        })

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise StationUnreachable(f"{method} {url} failed: {e}")
        if response.status_code == 404:
            raise NotFound(f"{path} not found")
        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            raise StationUnreachable(str(e))
        return response

    def _get_json(self, path: str, **kwargs) -> Any:
        return self._request("GET", path, **kwargs).json()

    # --- catalog ---

    def list_tracks(self) -> List[Track]:
        return [Track.from_dict(t) for t in self._get_json("/api/songs")]

    def search(self, query: str) -> List[Track]:
        if not query.strip():
            return []
        return [Track.from_dict(t) for t in self._get_json("/api/songs/search", params={"q": query})]

    def list_albums(self) -> List[Dict[str, Any]]:
        albums = self._get_json("/api/songs/albums")
        for album in albums:
            album["songs"] = [Track.from_dict(t) for t in album.get("songs", [])]
        return albums

    def get_track(self, track_id: str) -> Optional[Track]:
        try:
            return Track.from_dict(self._get_json(f"/api/songs/{quote(track_id, safe='')}"))
        except NotFound:
            return None

    # --- media ---

    def stream_url(self, track: Track) -> str:
        return f"{self.base_url}/media/{quote(track.id, safe='')}"

    def download_url(self, track: Track) -> str:
        return f"{self.stream_url(track)}/download"

    # --- history ---

    def record_play(self, track_id: str) -> None:
        self._request("POST", f"/api/recently-played/{quote(track_id, safe='')}")

    def recently_played(self) -> List[Track]:
        return [Track.from_dict(t) for t in self._get_json("/api/recently-played")]
