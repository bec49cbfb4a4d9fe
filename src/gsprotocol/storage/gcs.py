"""Google Cloud Storage client for gsprotocol.

Talks to the GCS JSON API via gcloud-aio-storage. Only two calls are made:
a metadata download (``alt=json``) and a media download stream, both for a
single object and optionally a single generation.

Credentials are resolved by gcloud-aio-auth (service account file, or
Application Default Credentials: GOOGLE_APPLICATION_CREDENTIALS, gcloud auth,
metadata server).

Error mapping:
    404 mentioning the bucket   -> BucketNotFound
    other 404                   -> ObjectNotFound
    any other HTTP status       -> UpstreamStatusError (status, body, headers)
    connection errors/timeouts  -> TransportFailure
"""

from __future__ import annotations

import asyncio
import email.utils
import json
import logging
from contextlib import AsyncExitStack
from datetime import datetime

import aiohttp
from gcloud.aio.storage import Storage

from gsprotocol.errors import (
    BucketNotFound,
    ObjectNotFound,
    TransportFailure,
    UpstreamStatusError,
)
from gsprotocol.models import ObjectMetadata, ReaderAttrs

logger = logging.getLogger(__name__)

# Framing headers of the upstream error payload, which is re-encoded.
_HOP_HEADERS = {"content-length", "content-encoding", "transfer-encoding"}

_STORE_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)

# Media streams have no overall deadline; per-read deadlines come from the
# httpx request timeout.
_STREAM_TIMEOUT = aiohttp.ClientTimeout(total=None, sock_connect=30)

# Ask for the stored bytes of gzip-encoded objects instead of decompressive
# transcoding, so Content-Length and x-goog-hash describe the body.
_STREAM_HEADERS = {"Accept-Encoding": "gzip"}


class GCSStorageClient:
    """StorageClient backed by a gcloud-aio-storage ``Storage`` session.

    Attributes:
        storage: The gcloud-aio-storage client. Shared by all handles.
    """

    def __init__(
        self,
        storage: Storage | None = None,
        service_file: str | None = None,
        api_root: str | None = None,
        media_session: aiohttp.ClientSession | None = None,
    ) -> None:
        if storage is None:
            storage = Storage(service_file=service_file, api_root=api_root)
        self.storage = storage
        self._media_session = media_session

    def bucket(self, name: str) -> GCSBucketHandle:
        return GCSBucketHandle(self, name)

    def media_session(self) -> aiohttp.ClientSession:
        """Session used for media downloads.

        Response bodies are not decompressed, so a gzip-encoded object is
        relayed byte for byte with its Content-Encoding header.
        """
        if self._media_session is None:
            self._media_session = aiohttp.ClientSession(auto_decompress=False)
        return self._media_session

    async def close(self) -> None:
        """Close the underlying HTTP sessions."""
        if self._media_session is not None:
            await self._media_session.close()
        await self.storage.close()


class GCSBucketHandle:
    def __init__(self, client: GCSStorageClient, name: str) -> None:
        self._client = client
        self.name = name

    def object(self, key: str) -> GCSObjectHandle:
        return GCSObjectHandle(self._client, self.name, key)


class GCSObjectHandle:
    """Handle for one object, optionally pinned to a generation.

    Negative generations leave the request unpinned, matching the Cloud
    Storage client libraries.
    """

    def __init__(
        self,
        client: GCSStorageClient,
        bucket: str,
        key: str,
        generation: int | None = None,
    ) -> None:
        self._client = client
        self._storage = client.storage
        self.bucket = bucket
        self.key = key
        self.generation = generation

    def with_generation(self, generation: int) -> GCSObjectHandle:
        return GCSObjectHandle(self._client, self.bucket, self.key, generation)

    def _params(self, alt: str) -> dict[str, str]:
        params = {"alt": alt}
        if self.generation is not None and self.generation >= 0:
            params["generation"] = str(self.generation)
        return params

    async def fetch_attrs(self) -> ObjectMetadata:
        # The public download_metadata() wrapper has no generation parameter.
        try:
            data = await self._storage._download(
                self.bucket, self.key, params=self._params("json")
            )
        except _STORE_ERRORS as e:
            raise self._translate(e) from e
        return ObjectMetadata.from_resource(json.loads(data.decode()))

    async def open_reader(self) -> GCSReader:
        stack = AsyncExitStack()
        try:
            stream = await self._storage._download_stream(
                self.bucket,
                self.key,
                params=self._params("media"),
                headers=dict(_STREAM_HEADERS),
                timeout=_STREAM_TIMEOUT,
                session=self._client.media_session(),
            )
            await stack.enter_async_context(stream)
        except _STORE_ERRORS as e:
            await stack.aclose()
            raise self._translate(e) from e
        return GCSReader(stream, stack)

    def _translate(self, exc: Exception) -> Exception:
        """Map a gcloud-aio / aiohttp error onto the gsprotocol taxonomy."""
        if isinstance(exc, aiohttp.ClientResponseError):
            body = _error_body(exc)
            if exc.status == 404:
                if "bucket does not exist" in body.lower():
                    return BucketNotFound(self.bucket)
                return ObjectNotFound(self.bucket, self.key)
            logger.warning(
                "GCS returned %d for %s/%s", exc.status, self.bucket, self.key
            )
            headers = {
                k: v for k, v in (exc.headers or {}).items() if k.lower() not in _HOP_HEADERS
            }
            return UpstreamStatusError(exc.status, body, headers)
        return TransportFailure(f"gsprotocol: {self.bucket}/{self.key}: {exc}")


class GCSReader:
    """StorageReader over a gcloud-aio-storage StreamResponse."""

    def __init__(self, stream, stack: AsyncExitStack) -> None:
        self._stream = stream
        self._stack = stack
        headers = getattr(getattr(stream, "_response", None), "headers", None) or {}
        self._attrs = ReaderAttrs(
            content_type=headers.get("Content-Type", ""),
            content_encoding=headers.get("Content-Encoding", ""),
            cache_control=headers.get("Cache-Control", ""),
            size=int(getattr(stream, "content_length", 0) or 0),
            last_modified=_parse_last_modified(headers.get("Last-Modified", "")),
        )

    @property
    def attrs(self) -> ReaderAttrs:
        return self._attrs

    async def read(self, size: int = -1) -> bytes:
        try:
            return await self._stream.read(size)
        except _STORE_ERRORS as e:
            raise TransportFailure(f"gsprotocol: read failed: {e}") from e

    async def close(self) -> None:
        await self._stack.aclose()


def _error_body(exc: aiohttp.ClientResponseError) -> str:
    """Recover the response body from a gcloud-aio error message.

    gcloud-aio-auth formats the message as ``"<reason>: <body>"``.
    """
    message = exc.message or ""
    _, sep, body = message.partition(": ")
    return body if sep else message


def _parse_last_modified(value: str) -> datetime | None:
    if not value:
        return None
    try:
        return email.utils.parsedate_to_datetime(value)
    except (ValueError, TypeError):
        return None
