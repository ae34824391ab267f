"""
Streaming gateway: turns a track id and an optional Range header into an
HTTP outcome.

The gateway is independent of the web framework. It returns a StreamResponse
(status, headers, optional byte iterator or redirect target) that the Flask
layer in shared.api renders. Storage errors never escape; each one maps to
404, 416 or 503.
"""

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Dict, Iterator, Mapping, Optional, Tuple
from urllib.parse import quote

from shared.constants import MIME_EXTENSIONS
from shared.errors import NotFound, RangeNotSatisfiable, StorageNotConfigured, StorageUnavailable
from shared.locator import ChunkedLocation, DirectLocation, MissingLocation, resolve
from shared.models import Track
from storage.storage_provider import StorageBackend

logger = logging.getLogger(__name__)

_RANGE_SPEC = re.compile(r"^\s*(\d*)\s*-\s*(\d*)\s*$")
_UNSAFE_FILENAME_CHARS = re.compile(r'["\\/\x00-\x1f\x7f]')


@dataclass
class StreamResponse:
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[Iterator[bytes]] = None
    error: Optional[str] = None

    @property
    def location(self) -> Optional[str]:
        return self.headers.get("Location")


def parse_range(header: Optional[str], file_size: int) -> Optional[Tuple[int, int]]:
    """
    Parse a Range header against an object of `file_size` bytes.

    Returns an inclusive (start, end) pair, or None when the header is absent
    or not a syntactically valid byte range (the caller then serves the whole
    object). Only the first range of a multi-range header is honoured and an
    end past the object is clamped to its last byte.

    Raises:
        RangeNotSatisfiable: start >= file_size, start > end, or an empty suffix
    """
    if not header:
        return None
    unit, sep, ranges = header.partition("=")
    if not sep or unit.strip().lower() != "bytes":
        return None

    match = _RANGE_SPEC.match(ranges.split(",", 1)[0])
    if not match:
        return None
    first, last = match.groups()

    if not first:
        if not last:
            return None
        suffix = int(last)
        if suffix == 0 or file_size == 0:
            raise RangeNotSatisfiable(file_size)
        return max(0, file_size - suffix), file_size - 1

    start = int(first)
    end = int(last) if last else file_size - 1
    if start >= file_size or start > end:
        raise RangeNotSatisfiable(file_size)
    return start, min(end, file_size - 1)


def download_filename(track: Track) -> str:
    """'<title> - <artist>.<ext>' with characters unsafe in a header removed."""
    ext = MIME_EXTENSIONS.get((track.mime_type or "").lower(), "flac")
    name = f"{track.title} - {track.artist}.{ext}"
    return _UNSAFE_FILENAME_CHARS.sub("", name).strip() or f"{track.id}.{ext}"


def content_disposition(filename: str) -> str:
    # ASCII fallback for old clients, RFC 5987 form for everything else
    fallback = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
    return f"attachment; filename=\"{fallback or 'download'}\"; filename*=UTF-8''{quote(filename, safe='')}"


class StreamingGateway:
    """
    Serves audio bytes for track ids.

    Stateless per request: nothing is shared between concurrent streams
    beyond the read-only catalog and backend clients.
    """

    def __init__(self, catalog, backends: Mapping[str, StorageBackend]):
        self.catalog = catalog
        self.backends = backends

    @staticmethod
    def _error(status: int, message: str) -> StreamResponse:
        return StreamResponse(status=status, error=message)

    def stream(self, track_id: str, range_header: Optional[str] = None) -> StreamResponse:
        """Stream a track, honouring byte ranges for proxied stores."""
        return self._handle(track_id, range_header, download=False)

    def download(self, track_id: str) -> StreamResponse:
        """Serve the whole object as an attachment (or redirect for direct stores)."""
        return self._handle(track_id, None, download=True)

    def _handle(self, track_id: str, range_header: Optional[str], download: bool) -> StreamResponse:
        track = self.catalog.find_track_by_id(track_id)
        if track is None:
            return self._error(404, "Track not found")

        try:
            location = resolve(track, self.backends)

            if isinstance(location, DirectLocation):
                return StreamResponse(status=302, headers={"Location": location.url})
            elif isinstance(location, MissingLocation):
                logger.info("Track %s has no playable source: %s", track_id, location.reason)
                return self._error(404, "Track has no audio")
            elif isinstance(location, ChunkedLocation):
                response = self._serve_chunked(location, range_header)
                if download:
                    response.headers["Content-Disposition"] = content_disposition(download_filename(track))
                return response
            else:
                raise TypeError(f"Unhandled location: {location!r}")

        except RangeNotSatisfiable as e:
            return StreamResponse(
                status=416,
                headers={"Content-Range": f"bytes */{e.file_size}", "Accept-Ranges": "bytes"},
            )
        except StorageNotConfigured as e:
            logger.error("Cannot stream %s: %s", track_id, e)
            return self._error(503, "Storage not configured")
        except NotFound as e:
            logger.info("Missing bytes for %s: %s", track_id, e)
            return self._error(404, "Audio not found")
        except StorageUnavailable as e:
            logger.warning("Storage unreachable for %s: %s", track_id, e)
            return self._error(404, "Audio not available")

    def _serve_chunked(self, location: ChunkedLocation, range_header: Optional[str]) -> StreamResponse:
        file_size = location.length
        headers = {
            "Accept-Ranges": "bytes",
            "Content-Type": location.mime_type,
        }

        byte_range = parse_range(range_header, file_size)
        if byte_range is None:
            headers["Content-Length"] = str(file_size)
            if file_size == 0:
                return StreamResponse(status=200, headers=headers, body=iter(()))
            body = location.backend.open_byte_range(location.key, 0, file_size - 1)
            return StreamResponse(status=200, headers=headers, body=body)

        start, end = byte_range
        headers["Content-Range"] = f"bytes {start}-{end}/{file_size}"
        headers["Content-Length"] = str(end - start + 1)
        body = location.backend.open_byte_range(location.key, start, end)
        return StreamResponse(status=206, headers=headers, body=body)
