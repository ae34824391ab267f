"""
Resolve a track's locator to a place its bytes can be read from.

The result is one of three variants the gateway matches on:
DirectLocation (redirect), ChunkedLocation (proxy byte ranges) or
MissingLocation (nothing to serve).
"""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Union

from shared.errors import StorageNotConfigured
from shared.models import ChunkedLocator, DirectLocator, Track
from storage.storage_provider import StorageBackend

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectLocation:
    url: str


@dataclass(frozen=True)
class ChunkedLocation:
    backend: StorageBackend
    key: str
    length: int
    mime_type: str


@dataclass(frozen=True)
class MissingLocation:
    reason: str = "no backing bytes"


Location = Union[DirectLocation, ChunkedLocation, MissingLocation]


def _backend_for(store: Optional[str], backends: Mapping[str, StorageBackend]) -> StorageBackend:
    backend = backends.get(store) if store else None
    if backend is None:
        raise StorageNotConfigured(f"Store '{store}' is not configured on this station")
    return backend


def resolve(track: Track, backends: Mapping[str, StorageBackend]) -> Location:
    """
    Map a track to a Location.

    Raises:
        StorageNotConfigured: The locator names a store with no backend
        NotFound / StorageUnavailable: Measuring a chunked object failed
    """
    locator = track.locator

    if isinstance(locator, DirectLocator):
        if locator.url:
            return DirectLocation(url=locator.url)
        if locator.store and locator.key:
            url = _backend_for(locator.store, backends).resolve_direct_url(locator.key)
            if url:
                return DirectLocation(url=url)
            logger.warning("Store %s produced no URL for track %s", locator.store, track.id)
        return MissingLocation(reason="direct locator without a URL")

    if isinstance(locator, ChunkedLocator):
        backend = _backend_for(locator.store, backends)
        return ChunkedLocation(
            backend=backend,
            key=locator.key,
            length=backend.object_length(locator.key),
            mime_type=track.mime_type,
        )

    if locator is None:
        return MissingLocation()

    raise TypeError(f"Unhandled locator kind: {type(locator).__name__}")
