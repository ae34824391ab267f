"""
Persisted playback snapshot, one JSON file per client scope.
Used by the player for local resume and by the station for browser clients
that keep their snapshot server-side.
"""
import json
import logging
import os
import re
import threading
import time
from pathlib import Path
from typing import Any, Optional, Union

from shared.config import config_dir
from shared.models import PlaybackSnapshot

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_SCOPE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def _state_path(scope: str, state_dir: Optional[str] = None) -> Path:
    base = Path(state_dir).expanduser() if state_dir else config_dir()
    safe_scope = _SCOPE_CHARS.sub("_", scope) or "default"
    return base / f"playback_state_{safe_scope}.json"


def get_state(scope: str, state_dir: Optional[str] = None) -> Optional[PlaybackSnapshot]:
    """Return the stored snapshot for this scope, or None if absent or unreadable."""
    path = _state_path(scope, state_dir)
    with _lock:
        if not path.exists():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable playback state %s: %s", path, e)
            return None
    return PlaybackSnapshot.from_dict(raw)


def put_state(scope: str, payload: Union[PlaybackSnapshot, dict[str, Any]],
              state_dir: Optional[str] = None) -> Optional[PlaybackSnapshot]:
    """
    Persist a snapshot for this scope; the single writer for that scope wins.
    Payloads without a track id are dropped. Returns what was stored.
    """
    snapshot = payload if isinstance(payload, PlaybackSnapshot) else PlaybackSnapshot.from_dict(payload)
    if snapshot is None:
        return None
    snapshot.updated_at = time.time()

    path = _state_path(scope, state_dir)
    tmp_path = path.with_suffix(".tmp")
    with _lock:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path.write_text(json.dumps(snapshot.to_dict(), indent=2), encoding="utf-8")
        os.replace(tmp_path, path)
    return snapshot


def clear_state(scope: str, state_dir: Optional[str] = None) -> None:
    path = _state_path(scope, state_dir)
    with _lock:
        path.unlink(missing_ok=True)
