"""
Queue navigation rules.
Pure functions: given the queue length, cursor, shuffle flag and repeat mode,
decide which index plays next. No I/O and no player state.
"""

import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from shared.constants import PREVIOUS_RESTART_THRESHOLD_SEC, WRAP_SINGLE_TRACK_QUEUE
from shared.models import RepeatMode


class Move(Enum):
    INDEX = "index"        # play the track at `index`
    RESTART = "restart"    # replay the current track from the start
    TERMINAL = "terminal"  # no more tracks
    NOOP = "noop"          # nothing to navigate


@dataclass(frozen=True)
class Navigation:
    move: Move
    index: Optional[int] = None

    @classmethod
    def to(cls, index: int) -> 'Navigation':
        return cls(Move.INDEX, index)


TERMINAL = Navigation(Move.TERMINAL)
NOOP = Navigation(Move.NOOP)


def next_index(length: int, current: int, shuffle: bool, repeat_mode: RepeatMode,
               rng: Optional[random.Random] = None) -> Navigation:
    """
    Where `next` goes.

    Repeat-one restarts the current track whatever the queue or shuffle
    flag. Shuffle picks uniformly over the whole queue, the current track
    included. Otherwise the cursor advances; past the end it wraps under
    repeat-all (or for a one-track queue) and is terminal otherwise.
    """
    if repeat_mode == RepeatMode.ONE:
        return Navigation(Move.RESTART, current)
    if length <= 0:
        return NOOP
    if shuffle:
        return Navigation.to((rng or random).randrange(length))

    candidate = current + 1
    if candidate < length:
        return Navigation.to(candidate)
    if repeat_mode == RepeatMode.ALL or (length == 1 and WRAP_SINGLE_TRACK_QUEUE):
        return Navigation.to(0)
    return TERMINAL


def previous_index(length: int, current: int, position_seconds: float) -> Navigation:
    """
    Where `previous` goes.
    Past the first few seconds of a track it restarts that track instead.
    """
    if position_seconds > PREVIOUS_RESTART_THRESHOLD_SEC:
        return Navigation(Move.RESTART, current)
    if length <= 0:
        return NOOP
    candidate = current - 1
    if candidate < 0:
        candidate = length - 1
    return Navigation.to(candidate)
