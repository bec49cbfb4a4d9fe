"""Object store client protocols for gsprotocol.

The transport talks to the store only through these three small capability
interfaces (resolve a bucket, resolve an object and pin its generation, open
a reader), so the Google Cloud Storage adapter and the in-memory store are
interchangeable.
"""

from __future__ import annotations

from typing import Protocol

from gsprotocol.models import ObjectMetadata, ReaderAttrs


class StorageReader(Protocol):
    """An open byte stream for one object generation."""

    @property
    def attrs(self) -> ReaderAttrs:
        """Attributes observed when the stream was opened."""
        ...

    async def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes. Returns b"" at end of stream."""
        ...

    async def close(self) -> None:
        """Release the stream. Safe to call more than once."""
        ...


class ObjectHandle(Protocol):
    """A reference to an object, optionally pinned to a generation.

    Handles are cheap and immutable: ``with_generation`` returns a new handle
    and performs no I/O.
    """

    def with_generation(self, generation: int) -> ObjectHandle:
        """Return a handle pinned to exactly ``generation``."""
        ...

    async def fetch_attrs(self) -> ObjectMetadata:
        """Fetch the object's metadata.

        Raises:
            ObjectNotFound: If the object or generation does not exist.
            BucketNotFound: If the bucket does not exist.
            UpstreamStatusError: If the store returned a structured error.
            TransportFailure: If the store could not be reached.
        """
        ...

    async def open_reader(self) -> StorageReader:
        """Open a byte stream for the object.

        Raises:
            Same as fetch_attrs().
        """
        ...


class BucketHandle(Protocol):
    """A reference to a bucket."""

    def object(self, key: str) -> ObjectHandle:
        """Return a handle for ``key`` in this bucket (no I/O)."""
        ...


class StorageClient(Protocol):
    """Entry point of the object store. Must be safe for concurrent use."""

    def bucket(self, name: str) -> BucketHandle:
        """Return a handle for the bucket ``name`` (no I/O)."""
        ...
