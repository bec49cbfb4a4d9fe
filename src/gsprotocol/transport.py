"""httpx transport serving Google Cloud Storage objects.

Mount it on an ``httpx.AsyncClient`` to fetch ``gs://`` URLs::

    transport = new_transport()
    async with httpx.AsyncClient(mounts={"gs://": transport}) as client:
        resp = await client.get("gs://my-bucket/path/to/object.txt")

Noncurrent versions are addressed with the generation number as the URL
fragment, e.g. ``gs://my-bucket/example.txt#1587160158394554``.

Only GET and HEAD are supported; every other method gets 405. Responses are
HTTP/1.0 style and carry ``Connection: close``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Mapping
from typing import TypeVar

import httpx

from gsprotocol import metrics
from gsprotocol.errors import GSProtocolError, NotFoundError, UpstreamStatusError
from gsprotocol.headers import make_headers
from gsprotocol.locator import locator_from_request, resolve
from gsprotocol.models import ObjectMetadata
from gsprotocol.preconditions import (
    ConditionalHeaders,
    Disposition,
    evaluate_preconditions,
    not_modified_headers,
)
from gsprotocol.storage.backend import ObjectHandle, StorageClient, StorageReader

logger = logging.getLogger(__name__)

# Streaming chunk size: 64 KB
_CHUNK_SIZE = 64 * 1024

_HTTP_VERSION = b"HTTP/1.0"

T = TypeVar("T")


def _response(
    status_code: int,
    headers: httpx.Headers | Mapping[str, str] | None = None,
    *,
    stream: httpx.AsyncByteStream | None = None,
    content: bytes | None = None,
) -> httpx.Response:
    """Build an HTTP/1.0 response that closes the connection."""
    headers = httpx.Headers(headers)
    headers["Connection"] = "close"
    return httpx.Response(
        status_code,
        headers=headers,
        stream=stream,
        content=content,
        extensions={"http_version": _HTTP_VERSION},
    )


def handle_error(exc: GSProtocolError, include_body: bool = True) -> httpx.Response:
    """Translate a store-side error into a response.

    Missing buckets and objects become 404 with an empty body; structured
    upstream errors are passed through with their own status, body and
    headers. Any other error is re-raised.

    Args:
        exc: The store-side error.
        include_body: False for HEAD, which keeps the upstream status and
            headers but never carries a body.
    """
    if isinstance(exc, NotFoundError):
        return _response(404)
    if isinstance(exc, UpstreamStatusError):
        content = exc.body.encode() if include_body else None
        return _response(exc.http_status, exc.headers, content=content)
    raise exc


def _read_timeout(request: httpx.Request) -> float | None:
    """The read deadline the caller attached to the request, if any."""
    timeout = request.extensions.get("timeout") or {}
    return timeout.get("read")


async def _with_deadline(aw: Awaitable[T], request: httpx.Request) -> T:
    timeout = _read_timeout(request)
    if timeout is None:
        return await aw
    try:
        return await asyncio.wait_for(aw, timeout)
    except asyncio.TimeoutError as exc:
        raise httpx.ReadTimeout(
            "gsprotocol: timed out waiting for the object store", request=request
        ) from exc


class ObjectStream(httpx.AsyncByteStream):
    """Response body backed by a StorageReader.

    The reader is closed when the body is exhausted, when the response is
    closed, and when the consuming task is cancelled mid-stream.
    """

    def __init__(
        self,
        reader: StorageReader,
        request: httpx.Request,
        chunk_size: int = _CHUNK_SIZE,
    ) -> None:
        self._reader = reader
        self._request = request
        self._chunk_size = chunk_size
        self._closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await _with_deadline(
                    self._reader.read(self._chunk_size), self._request
                )
                if not chunk:
                    break
                metrics.record_bytes(len(chunk))
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._reader.close()


class GSTransport(httpx.AsyncBaseTransport):
    """Serves ``gs://bucket/key[#generation]`` requests from an object store.

    Attributes:
        client: The object store client. It is the only state shared between
            requests and must be safe for concurrent use.
    """

    def __init__(self, client: StorageClient, chunk_size: int = _CHUNK_SIZE) -> None:
        self.client = client
        self.chunk_size = chunk_size

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        start = time.monotonic()
        if request.method == "GET":
            response = await self.get_object(request)
        elif request.method == "HEAD":
            response = await self.head_object(request)
        else:
            response = _response(405)

        duration_ms = round((time.monotonic() - start) * 1000, 2)
        metrics.record_request(request.method, response.status_code)
        logger.debug(
            "%s %s %d %.2fms",
            request.method,
            request.url,
            response.status_code,
            duration_ms,
            extra={
                "method": request.method,
                "url": str(request.url),
                "status": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return response

    async def aclose(self) -> None:
        close = getattr(self.client, "close", None)
        if close is not None:
            await close()

    async def get_object(self, request: httpx.Request) -> httpx.Response:
        """GET: evaluate preconditions, then stream the pinned generation."""
        try:
            obj, attrs = await self._object_attrs(request)
        except GSProtocolError as exc:
            return handle_error(exc)

        headers = make_headers(attrs)
        response = self._check_preconditions(request, headers, attrs)
        if response is not None:
            return response

        try:
            reader = await _with_deadline(obj.open_reader(), request)
        except GSProtocolError as exc:
            return handle_error(exc)

        return _response(
            200,
            headers,
            stream=ObjectStream(reader, request, self.chunk_size),
        )

    async def head_object(self, request: httpx.Request) -> httpx.Response:
        """HEAD: same as GET but the object body is never opened."""
        try:
            _, attrs = await self._object_attrs(request)
        except GSProtocolError as exc:
            return handle_error(exc, include_body=False)

        headers = make_headers(attrs)
        response = self._check_preconditions(request, headers, attrs)
        if response is not None:
            return response
        return _response(200, headers)

    async def _object_attrs(
        self, request: httpx.Request
    ) -> tuple[ObjectHandle, ObjectMetadata]:
        locator = locator_from_request(request)
        try:
            locator, obj, attrs = await _with_deadline(
                resolve(self.client, locator), request
            )
        except UpstreamStatusError as exc:
            logger.warning(
                "Object store error for gs://%s/%s: %s",
                locator.bucket,
                locator.key,
                exc,
            )
            raise
        return obj, attrs

    def _check_preconditions(
        self,
        request: httpx.Request,
        headers: httpx.Headers,
        attrs: ObjectMetadata,
    ) -> httpx.Response | None:
        """Return a 304/412 response, or None if the request may proceed."""
        conditions = ConditionalHeaders.from_headers(request.headers)
        disposition = evaluate_preconditions(conditions, headers, attrs.updated)
        if disposition is Disposition.PRECONDITION_FAILED:
            return _response(412, headers)
        if disposition is Disposition.NOT_MODIFIED:
            return _response(304, not_modified_headers(headers))
        return None


def new_transport(
    service_file: str | None = None,
    api_root: str | None = None,
) -> GSTransport:
    """Create a transport backed by Google Cloud Storage.

    Credentials are resolved by gcloud-aio-auth (``service_file``, or
    Application Default Credentials when omitted).

    Args:
        service_file: Path to a service account JSON key file.
        api_root: Alternative API endpoint, e.g. a storage emulator.
    """
    from gsprotocol.storage.gcs import GCSStorageClient

    return GSTransport(GCSStorageClient(service_file=service_file, api_root=api_root))
