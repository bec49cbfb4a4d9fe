"""Shared pytest fixtures for gsprotocol tests.

A single FastAPI app is created per test session to avoid duplicate
Prometheus metric registration errors (the instrumentator registers its
collectors in the global prometheus_client registry).

The mounted gs:// client is manually set on the app to avoid needing to run
the full lifespan, which would try to reach Cloud Storage.
"""

from datetime import datetime, timezone

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from gsprotocol.config import GSProtocolConfig, ObservabilityConfig, StorageConfig
from gsprotocol.errors import BucketNotFound, ObjectNotFound
from gsprotocol.models import ObjectMetadata, ReaderAttrs
from gsprotocol.server import create_app, create_gs_client
from gsprotocol.storage.memory import MemoryStorageClient
from gsprotocol.transport import GSTransport

CONTENT = b"Hello Google Cloud Storage!"

# Checksums of CONTENT: MD5 and CRC32-C (Castagnoli)
MD5 = bytes.fromhex("3c739cb81daf799bce8b0b5495f355c4")
ETAG = '"3c739cb81daf799bce8b0b5495f355c4"'
CRC32C = 0xE792D679

UPDATED = datetime(2020, 4, 15, 0, 56, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Stub object store
# ---------------------------------------------------------------------------


class StubReader:
    """StorageReader that records whether it has been closed."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0
        self.closed = False
        self.attrs = ReaderAttrs(size=len(data))

    async def read(self, size: int = -1) -> bytes:
        if size < 0:
            size = len(self._data) - self._pos
        chunk = self._data[self._pos : self._pos + size]
        self._pos += len(chunk)
        return chunk

    async def close(self) -> None:
        self.closed = True


class StubObject:
    """ObjectHandle with scripted behaviour.

    ``attrs`` and ``data`` describe the object. ``fetch_error`` and
    ``open_error`` are raised instead when set. Every generation passed to
    ``with_generation`` and every generation seen by ``fetch_attrs`` and
    ``open_reader`` is recorded, so tests can assert on version pinning.
    """

    def __init__(self, attrs=None, data=CONTENT, fetch_error=None, open_error=None):
        self.attrs = attrs if attrs is not None else ObjectMetadata()
        self.data = data
        self.fetch_error = fetch_error
        self.open_error = open_error
        self.generation = None
        self.pinned = []
        self.fetched = []
        self.opened = []
        self.readers = []

    def with_generation(self, generation: int) -> "StubObject":
        self.pinned.append(generation)
        pinned = StubObject(self.attrs, self.data, self.fetch_error, self.open_error)
        pinned.generation = generation
        # share the logs with the unpinned handle
        pinned.pinned = self.pinned
        pinned.fetched = self.fetched
        pinned.opened = self.opened
        pinned.readers = self.readers
        return pinned

    async def fetch_attrs(self) -> ObjectMetadata:
        self.fetched.append(self.generation)
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.attrs

    async def open_reader(self) -> StubReader:
        self.opened.append(self.generation)
        if self.open_error is not None:
            raise self.open_error
        reader = StubReader(self.data)
        self.readers.append(reader)
        return reader


class StubBucket:
    def __init__(self, name: str, objects: dict | None) -> None:
        self.name = name
        self._objects = objects

    def object(self, key: str):
        if self._objects is None:
            return StubObject(fetch_error=BucketNotFound(self.name))
        obj = self._objects.get(key)
        if obj is None:
            return StubObject(fetch_error=ObjectNotFound(self.name, key))
        return obj


class StubStorage:
    """StorageClient serving ``{bucket: {key: StubObject}}``."""

    def __init__(self, buckets: dict) -> None:
        self._buckets = buckets
        self.closed = False

    def bucket(self, name: str) -> StubBucket:
        return StubBucket(name, self._buckets.get(name))

    async def close(self) -> None:
        self.closed = True


def stub_client(obj: StubObject, **client_kwargs) -> AsyncClient:
    """An httpx client whose gs:// transport serves ``obj`` as bucket-name/object-key."""
    storage = StubStorage({"bucket-name": {"object-key": obj}})
    return AsyncClient(mounts={"gs://": GSTransport(storage)}, **client_kwargs)


# ---------------------------------------------------------------------------
# Memory store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> MemoryStorageClient:
    """A memory store with an empty ``bucket-name`` bucket."""
    store = MemoryStorageClient()
    store.create_bucket("bucket-name")
    return store


@pytest.fixture
async def gs_client(store) -> httpx.AsyncClient:
    """An httpx client with the gs:// transport mounted over ``store``."""
    async with AsyncClient(mounts={"gs://": GSTransport(store)}) as client:
        yield client


# ---------------------------------------------------------------------------
# Gateway fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def config() -> GSProtocolConfig:
    """Gateway config backed by the memory store, with metrics enabled."""
    return GSProtocolConfig(
        storage=StorageConfig(backend="memory"),
        observability=ObservabilityConfig(metrics=True),
    )


@pytest.fixture(scope="session")
def app(config: GSProtocolConfig):
    """Create a single gateway application for the whole session."""
    return create_app(config)


@pytest.fixture
async def client(app, store) -> AsyncClient:
    """Create an async test client for the gateway.

    A fresh gs:// client over the per-test memory store is set on app.state
    (the lifespan context doesn't auto-run with ASGITransport).
    """
    app.state.gs_client = create_gs_client(store)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
    await app.state.gs_client.aclose()
