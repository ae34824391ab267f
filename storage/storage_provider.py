"""
Abstract base class for storage backends.

This module defines the interface every backend implements so the station can
stream audio from local disk, AWS S3, Cloudflare R2, or any other
S3-compatible service without knowing which one backs a given track.
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterator, Optional


class StorageBackend(ABC):
    """
    Abstract base class for byte-range capable storage backends.

    Implementations raise `shared.errors.NotFound` for missing objects and
    `shared.errors.StorageUnavailable` when the backend cannot be reached;
    library exceptions never escape.
    """

    name: str = "storage"

    @abstractmethod
    def authenticate(self, credentials: Dict[str, str]) -> bool:
        """
        Connect to the backend.

        Args:
            credentials: Backend specific settings (base path, keys, endpoint...)

        Returns:
            True if the backend is usable, False otherwise
        """
        pass

    @abstractmethod
    def object_length(self, key: str) -> int:
        """
        Size of an object in bytes.

        Raises:
            NotFound: If the object does not exist
            StorageUnavailable: If the backend cannot be reached
        """
        pass

    @abstractmethod
    def open_byte_range(self, key: str, start: int, end: int) -> Iterator[bytes]:
        """
        Open an inclusive byte span of an object for streaming.

        The backing resource is opened before this returns, so open failures
        surface here rather than halfway through a response.

        Args:
            key: Object key
            start: First byte offset
            end: Last byte offset (inclusive)

        Returns:
            A ByteStream yielding the requested bytes in chunks; closing it
            releases the resource whether or not it was iterated
        """
        pass

    @abstractmethod
    def file_exists(self, key: str) -> bool:
        pass

    def resolve_direct_url(self, key: str) -> Optional[str]:
        """
        URL a client can fetch (with its own range requests) directly.

        Backends that cannot hand out URLs return None.
        """
        return None


class ByteStream:
    """
    Chunk iterator over an opened object span.

    The underlying handle is released when the chunks run out or when close()
    is called, whichever comes first; WSGI servers call close() even when a
    client disconnects before the first chunk is sent.
    """

    def __init__(self, chunks: Iterator[bytes], release: Callable[[], None]):
        self._chunks = chunks
        self._release = release
        self.closed = False

    def __iter__(self) -> 'ByteStream':
        return self

    def __next__(self) -> bytes:
        if self.closed:
            raise StopIteration
        try:
            return next(self._chunks)
        except StopIteration:
            self.close()
            raise

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            close_chunks = getattr(self._chunks, "close", None)
            if close_chunks is not None:
                close_chunks()
        finally:
            self._release()
