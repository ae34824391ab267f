"""
Catalog access for the player.
Caches the station's track listing and debounces search-as-you-type.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from shared.constants import SEARCH_DEBOUNCE_SEC
from shared.errors import CadenceError
from shared.models import Track
from player.client import StationClient

logger = logging.getLogger(__name__)


class LibraryManager:
    """Manages the track listing fetched from the station."""

    def __init__(self, client: StationClient, debounce: float = SEARCH_DEBOUNCE_SEC):
        self.client = client
        self.debounce = debounce
        self.tracks: List[Track] = []
        self._pending_search: Optional[asyncio.Task] = None

    def refresh(self) -> List[Track]:
        """Reload the full listing (newest first)."""
        self.tracks = self.client.list_tracks()
        logger.debug("Library refreshed: %d tracks", len(self.tracks))
        return self.tracks

    def get_all_tracks(self) -> List[Track]:
        if not self.tracks:
            self.refresh()
        return self.tracks

    def get_track(self, track_id: str) -> Optional[Track]:
        for track in self.tracks:
            if track.id == track_id:
                return track
        return self.client.get_track(track_id)

    def search(self, query: str) -> List[Track]:
        return self.client.search(query)

    def search_debounced(self, query: str, on_results: Callable[[List[Track]], None]) -> asyncio.Task:
        """
        Schedule a search that only runs if no newer query arrives within
        the debounce window. An empty query yields the full listing.
        """
        if self._pending_search is not None and not self._pending_search.done():
            self._pending_search.cancel()
        self._pending_search = asyncio.ensure_future(self._run_search(query, on_results))
        return self._pending_search

    async def _run_search(self, query: str, on_results: Callable[[List[Track]], None]):
        await asyncio.sleep(self.debounce)
        try:
            if query.strip():
                results = await asyncio.to_thread(self.client.search, query)
            else:
                results = await asyncio.to_thread(self.get_all_tracks)
        except CadenceError as e:
            logger.error("Search for %r failed: %s", query, e)
            return
        on_results(results)
