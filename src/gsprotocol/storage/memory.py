"""In-memory object store for gsprotocol.

Implements the StorageClient protocol over Python dictionaries, keeping the
full version history of every key so that pinned generations can be read
after a newer version has been written. Nothing is persisted.
"""

from __future__ import annotations

import hashlib
import io
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

import google_crc32c

from gsprotocol.errors import BucketNotFound, ObjectNotFound
from gsprotocol.models import ObjectMetadata, ReaderAttrs

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Version:
    attrs: ObjectMetadata
    data: bytes


class MemoryStorageClient:
    """Object store that holds all buckets and object versions in memory.

    Generations are microsecond timestamps, strictly increasing across the
    whole store, like the ones Cloud Storage assigns.
    """

    def __init__(self) -> None:
        self._buckets: dict[str, dict[str, list[_Version]]] = {}
        self._last_generation = 0

    # -- seeding -------------------------------------------------------------

    def create_bucket(self, name: str) -> None:
        """Create an empty bucket. Idempotent."""
        self._buckets.setdefault(name, {})

    def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        *,
        content_type: str = "",
        content_language: str = "",
        content_encoding: str = "",
        cache_control: str = "",
        content_disposition: str = "",
        storage_class: str = "STANDARD",
        metadata: Mapping[str, str] | None = None,
        updated: datetime | None = None,
    ) -> ObjectMetadata:
        """Store a new version of ``key`` and return its metadata.

        Raises:
            BucketNotFound: If the bucket has not been created.
        """
        objects = self._buckets.get(bucket)
        if objects is None:
            raise BucketNotFound(bucket)

        attrs = ObjectMetadata(
            content_type=content_type,
            content_language=content_language,
            content_encoding=content_encoding,
            cache_control=cache_control,
            content_disposition=content_disposition,
            size=len(data),
            updated=updated or datetime.now(timezone.utc),
            md5=hashlib.md5(data).digest(),
            crc32c=google_crc32c.value(data),
            generation=self._new_generation(),
            metageneration=1,
            storage_class=storage_class,
            metadata=dict(metadata or {}),
        )
        objects.setdefault(key, []).append(_Version(attrs=attrs, data=data))
        logger.debug("Stored %s/%s generation %d", bucket, key, attrs.generation)
        return attrs

    def _new_generation(self) -> int:
        self._last_generation = max(time.time_ns() // 1000, self._last_generation + 1)
        return self._last_generation

    # -- StorageClient -------------------------------------------------------

    def bucket(self, name: str) -> MemoryBucketHandle:
        return MemoryBucketHandle(self, name)

    def _lookup(self, bucket: str, key: str, generation: int | None) -> _Version:
        objects = self._buckets.get(bucket)
        if objects is None:
            raise BucketNotFound(bucket)
        versions = objects.get(key)
        if not versions:
            raise ObjectNotFound(bucket, key)
        if generation is None:
            return versions[-1]
        for version in versions:
            if version.attrs.generation == generation:
                return version
        raise ObjectNotFound(bucket, key)


class MemoryBucketHandle:
    def __init__(self, client: MemoryStorageClient, name: str) -> None:
        self._client = client
        self.name = name

    def object(self, key: str) -> MemoryObjectHandle:
        return MemoryObjectHandle(self._client, self.name, key)


class MemoryObjectHandle:
    def __init__(
        self,
        client: MemoryStorageClient,
        bucket: str,
        key: str,
        generation: int | None = None,
    ) -> None:
        self._client = client
        self.bucket = bucket
        self.key = key
        self.generation = generation

    def with_generation(self, generation: int) -> MemoryObjectHandle:
        return MemoryObjectHandle(self._client, self.bucket, self.key, generation)

    async def fetch_attrs(self) -> ObjectMetadata:
        return self._client._lookup(self.bucket, self.key, self.generation).attrs

    async def open_reader(self) -> MemoryReader:
        version = self._client._lookup(self.bucket, self.key, self.generation)
        attrs = version.attrs
        return MemoryReader(
            version.data,
            ReaderAttrs(
                content_type=attrs.content_type,
                content_encoding=attrs.content_encoding,
                cache_control=attrs.cache_control,
                size=attrs.size,
                last_modified=attrs.updated,
            ),
        )


class MemoryReader:
    """StorageReader over an in-memory bytes buffer."""

    def __init__(self, data: bytes, attrs: ReaderAttrs) -> None:
        self._buf = io.BytesIO(data)
        self._attrs = attrs
        self.closed = False

    @property
    def attrs(self) -> ReaderAttrs:
        return self._attrs

    async def read(self, size: int = -1) -> bytes:
        return self._buf.read(size)

    async def close(self) -> None:
        self.closed = True
        self._buf.close()
