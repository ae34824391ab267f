"""
Configuration for the station and the player.

Values come from (lowest to highest precedence) built-in defaults, an
optional server.json or player.json in the config directory, and CADENCE_* environment
variables (a .env file is loaded first).
"""

import dataclasses
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from shared.constants import (
    DEFAULT_CONFIG_DIR,
    DEFAULT_DATABASE_FILENAME,
    DEFAULT_NETWORK_TIMEOUT,
    DEFAULT_PRESIGNED_URL_EXPIRY,
    DEFAULT_SCOPE,
    DEFAULT_SERVER_HOST,
    DEFAULT_SERVER_PORT,
    DEFAULT_SERVER_URL,
    LIBRARY_METADATA_FILENAME,
)

load_dotenv()

logger = logging.getLogger(__name__)

ENV_PREFIX = "CADENCE_"


def config_dir() -> Path:
    return Path(os.getenv(ENV_PREFIX + "CONFIG_DIR", DEFAULT_CONFIG_DIR)).expanduser()


def _load_json_config(name: str) -> Dict[str, Any]:
    path = config_dir() / name
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Ignoring unreadable config file %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


def _env_overrides(cls) -> Dict[str, Any]:
    """Collect CADENCE_<FIELD> variables for the fields of a config dataclass."""
    overrides = {}
    for f in dataclasses.fields(cls):
        raw = os.getenv(ENV_PREFIX + f.name.upper())
        if raw is None:
            continue
        if f.type in (int, "int"):
            overrides[f.name] = int(raw)
        elif f.type in (bool, "bool"):
            overrides[f.name] = raw.strip().lower() in ("1", "true", "yes", "on")
        else:
            overrides[f.name] = raw
    return overrides


def _build(cls, data: Dict[str, Any]):
    field_names = {f.name for f in dataclasses.fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in field_names})


@dataclass
class ServerConfig:
    """
    Station configuration.

    The local store serves chunked tracks from `local_root`; the S3 store is
    enabled when `s3_bucket` is set.
    """
    host: str = DEFAULT_SERVER_HOST
    port: int = DEFAULT_SERVER_PORT
    library_path: str = ""
    database_path: str = ""
    local_root: str = ""
    s3_provider: str = "s3"  # s3, r2, generic
    s3_bucket: str = ""
    s3_endpoint: str = ""
    s3_region: str = ""
    s3_account_id: str = ""
    s3_access_key_id: str = ""
    s3_secret_access_key: str = ""
    presigned_url_expiry: int = DEFAULT_PRESIGNED_URL_EXPIRY
    log_level: str = "INFO"
    debug: bool = False

    def __post_init__(self):
        base = config_dir()
        if not self.library_path:
            self.library_path = str(base / LIBRARY_METADATA_FILENAME)
        if not self.database_path:
            self.database_path = str(base / DEFAULT_DATABASE_FILENAME)

    @classmethod
    def from_env(cls) -> 'ServerConfig':
        data = _load_json_config("server.json")
        data.update(_env_overrides(cls))
        return _build(cls, data)


@dataclass
class PlayerConfig:
    """Player (client) configuration stored locally on each device."""
    server_url: str = DEFAULT_SERVER_URL
    client_id: str = DEFAULT_SCOPE
    state_dir: str = ""
    request_timeout: int = DEFAULT_NETWORK_TIMEOUT
    log_level: str = "WARNING"

    def __post_init__(self):
        self.server_url = self.server_url.rstrip("/")
        if not self.state_dir:
            self.state_dir = str(config_dir())

    @classmethod
    def from_env(cls) -> 'PlayerConfig':
        data = _load_json_config("player.json")
        data.update(_env_overrides(cls))
        return _build(cls, data)


def setup_logging(level: Optional[str] = None) -> None:
    """Route log records to the console through rich."""
    from rich.logging import RichHandler

    level_name = (level or os.getenv(ENV_PREFIX + "LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
