"""
Keyboard controls for the terminal player.

Keys are read from stdin in cbreak mode and turned into engine intents:

    space       play / pause
    left/right  nudge 5 s back / forward
    up/down     volume up / down
    n / p       next / previous track
    m           mute
    s           shuffle
    r           repeat mode
    q           quit
"""

import asyncio
import logging
import os
import sys
import termios
import tty
from contextlib import contextmanager
from typing import Callable, List, Optional

from shared.constants import SKIP_KEY_SEC, VOLUME_STEP
from shared.models import TransportState
from player.engine import PlaybackEngine

logger = logging.getLogger(__name__)

QUIT = "quit"

KEY_NAMES = {
    " ": "space",
    "\x1b[A": "up",
    "\x1b[B": "down",
    "\x1b[C": "right",
    "\x1b[D": "left",
}

HELP = "space play/pause  ←/→ seek  ↑/↓ volume  n/p track  m mute  s shuffle  r repeat  q quit"


def split_keys(data: str) -> List[str]:
    """Key names in a chunk read from the terminal; one read may hold several presses."""
    keys = []
    while data:
        if data.startswith("\x1b[") and len(data) >= 3:
            raw, data = data[:3], data[3:]
        else:
            raw, data = data[0], data[1:]
        keys.append(KEY_NAMES.get(raw, raw.lower()))
    return keys


async def handle_key(engine: PlaybackEngine, key: str) -> Optional[str]:
    """Apply one key press to the engine. Returns QUIT for the quit key."""
    if key == "space":
        await engine.toggle_play_pause()
    elif key == "right":
        engine.skip_relative(SKIP_KEY_SEC)
    elif key == "left":
        engine.skip_relative(-SKIP_KEY_SEC)
    elif key == "up":
        engine.change_volume(VOLUME_STEP)
    elif key == "down":
        engine.change_volume(-VOLUME_STEP)
    elif key == "n":
        await engine.next()
    elif key == "p":
        await engine.previous()
    elif key == "m":
        engine.toggle_mute()
    elif key == "s":
        engine.toggle_shuffle()
    elif key == "r":
        engine.cycle_repeat_mode()
    elif key == "q":
        return QUIT
    else:
        logger.debug("Unbound key %r", key)
    return None


async def drive(engine: PlaybackEngine, keys: asyncio.Queue, interactive: bool,
                on_tick: Callable[[], None], tick: float = 0.25) -> None:
    """
    Feed queued key presses to the engine until the user quits or the queue
    runs out. Without a keyboard a paused or failed session cannot be
    resumed, so it ends there too.
    """
    while True:
        on_tick()
        if engine.state == TransportState.IDLE:
            return
        if not interactive and engine.state in (TransportState.PAUSED, TransportState.ERROR):
            return
        try:
            key = await asyncio.wait_for(keys.get(), timeout=tick)
        except asyncio.TimeoutError:
            continue
        if await handle_key(engine, key) == QUIT:
            return


def keyboard_available() -> bool:
    return sys.stdin.isatty()


@contextmanager
def key_reader(on_key: Callable[[str], None]):
    """
    Put the terminal in cbreak mode and call `on_key` with each key name
    from the running event loop. The terminal is restored on exit.
    """
    loop = asyncio.get_running_loop()
    fd = sys.stdin.fileno()
    saved = termios.tcgetattr(fd)

    def _on_readable():
        data = os.read(fd, 16).decode("utf-8", errors="ignore")
        for key in split_keys(data):
            on_key(key)

    tty.setcbreak(fd)
    loop.add_reader(fd, _on_readable)
    try:
        yield
    finally:
        loop.remove_reader(fd)
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)
