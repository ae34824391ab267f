"""
Queue Manager for the player.
Holds the ordered list of tracks being navigated and the cursor into it.
"""

import logging
from typing import List, Optional

from shared.models import Track

logger = logging.getLogger(__name__)


class QueueManager:
    """
    In-memory play queue with a cursor.

    The cursor is -1 when nothing is selected and otherwise always a valid
    index. Only the playback engine mutates the queue, from the event loop.
    """

    def __init__(self, tracks: Optional[List[Track]] = None):
        self._queue: List[Track] = list(tracks or [])
        self._index = -1

    @property
    def index(self) -> int:
        return self._index

    def replace(self, tracks: List[Track], current: Optional[Track] = None) -> None:
        """
        Swap in a new listing wholesale.
        The cursor follows `current` by id, or resets to -1 if it is not there.
        """
        self._queue = list(tracks)
        self._index = self.index_of(current) if current else -1
        logger.debug("Queue replaced: %d tracks, cursor %d", len(self._queue), self._index)

    def index_of(self, track: Track) -> int:
        for i, queued in enumerate(self._queue):
            if queued.id == track.id:
                return i
        return -1

    def set_index(self, index: int) -> Optional[Track]:
        """Move the cursor; out-of-range indexes are refused."""
        if not 0 <= index < len(self._queue):
            return None
        self._index = index
        return self._queue[index]

    def get(self, index: int) -> Optional[Track]:
        if 0 <= index < len(self._queue):
            return self._queue[index]
        return None

    def get_all(self) -> List[Track]:
        """Get a copy of all queued tracks."""
        return self._queue.copy()

    def __len__(self) -> int:
        return len(self._queue)
