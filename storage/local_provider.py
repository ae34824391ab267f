"""
Local filesystem storage backend.
Serves objects from a directory tree, e.g. a NAS mount or a legacy dump.
"""

import logging
from pathlib import Path
from typing import BinaryIO, Dict, Iterator, Optional

from shared.constants import DEFAULT_STREAM_CHUNK_SIZE
from shared.errors import NotFound, StorageNotConfigured, StorageUnavailable
from .storage_provider import ByteStream, StorageBackend

logger = logging.getLogger(__name__)


class LocalStorageProvider(StorageBackend):
    """
    Storage backend that reads from the local filesystem.
    Keys are paths relative to the base directory.
    """

    name = "local"

    def __init__(self, chunk_size: int = DEFAULT_STREAM_CHUNK_SIZE):
        self.base_path: Optional[Path] = None
        self.chunk_size = chunk_size

    def authenticate(self, credentials: Dict[str, str]) -> bool:
        """
        'Authenticate' by setting the base path.
        The root directory may be passed as 'base_path' or 'endpoint'.
        """
        path = credentials.get('base_path') or credentials.get('endpoint')
        if not path:
            return False

        self.base_path = Path(path).expanduser().absolute()
        if not self.base_path.is_dir():
            logger.warning("Local store root %s does not exist", self.base_path)
            return False
        return True

    def _get_path(self, key: str) -> Path:
        """Get absolute local path for a key, refusing keys outside the root."""
        if self.base_path is None:
            raise StorageNotConfigured("Local store has no base path")

        path = (self.base_path / key.lstrip("/")).resolve()
        root = self.base_path.resolve()
        if path != root and root not in path.parents:
            raise NotFound(f"Key escapes local store: {key}")
        return path

    def object_length(self, key: str) -> int:
        path = self._get_path(key)
        try:
            return path.stat().st_size
        except FileNotFoundError:
            raise NotFound(f"No object at {key}")
        except OSError as e:
            raise StorageUnavailable(f"Cannot stat {key}: {e}")

    def open_byte_range(self, key: str, start: int, end: int) -> Iterator[bytes]:
        path = self._get_path(key)
        try:
            handle = open(path, 'rb')
        except FileNotFoundError:
            raise NotFound(f"No object at {key}")
        except OSError as e:
            raise StorageUnavailable(f"Cannot open {key}: {e}")

        try:
            handle.seek(start)
        except OSError as e:
            handle.close()
            raise StorageUnavailable(f"Cannot seek {key}: {e}")
        return ByteStream(self._read_span(handle, end - start + 1), handle.close)

    def _read_span(self, handle: BinaryIO, length: int) -> Iterator[bytes]:
        remaining = length
        while remaining > 0:
            data = handle.read(min(self.chunk_size, remaining))
            if not data:
                break
            remaining -= len(data)
            yield data

    def file_exists(self, key: str) -> bool:
        try:
            return self._get_path(key).is_file()
        except NotFound:
            return False

    def resolve_direct_url(self, key: str) -> Optional[str]:
        # file:// URLs are meaningless to remote clients
        return None
