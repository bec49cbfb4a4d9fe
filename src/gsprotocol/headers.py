"""Map object metadata to HTTP response headers.

``make_headers`` is a pure function of ObjectMetadata. A header is omitted
when its source value is empty or zero, except ``x-goog-hash: crc32c=...``
which is always emitted.
"""

from __future__ import annotations

import base64
import email.utils
from datetime import datetime, timezone

import httpx

from gsprotocol.models import ObjectMetadata


def format_http_date(dt: datetime) -> str:
    """Format a datetime as an RFC 1123 HTTP date in GMT.

    Sub-second precision is dropped, e.g. ``Wed, 15 Apr 2020 00:56:00 GMT``.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc).replace(microsecond=0)
    return email.utils.format_datetime(dt, usegmt=True)


def make_etag(md5: bytes) -> str:
    """Return the strong ETag for an MD5 digest: ``"<lowercase hex>"``.

    The store's own etag attribute is not a quoted HTTP entity tag, so the
    MD5 digest is used as the validator instead.
    """
    return f'"{md5.hex()}"'


def make_headers(attrs: ObjectMetadata) -> httpx.Headers:
    """Build the response header set for an object.

    Args:
        attrs: The object metadata.

    Returns:
        A multi-valued header set (``x-goog-hash`` appears twice when the
        object has an MD5 digest).
    """
    items: list[tuple[str, str]] = []

    # common http headers
    if attrs.content_type:
        items.append(("Content-Type", attrs.content_type))
    if attrs.content_language:
        items.append(("Content-Language", attrs.content_language))
    if attrs.cache_control:
        items.append(("Cache-Control", attrs.cache_control))
    if attrs.size:
        items.append(("Content-Length", str(attrs.size)))
    if attrs.content_encoding:
        items.append(("Content-Encoding", attrs.content_encoding))
    if attrs.content_disposition:
        items.append(("Content-Disposition", attrs.content_disposition))
    if attrs.updated is not None:
        items.append(("Last-Modified", format_http_date(attrs.updated)))

    # hashes
    if attrs.md5:
        items.append(("x-goog-hash", "md5=" + base64.b64encode(attrs.md5).decode("ascii")))
        items.append(("ETag", make_etag(attrs.md5)))
    crc32c = (attrs.crc32c & 0xFFFFFFFF).to_bytes(4, "big")
    items.append(("x-goog-hash", "crc32c=" + base64.b64encode(crc32c).decode("ascii")))

    # custom headers by google
    if attrs.generation:
        items.append(("x-goog-generation", str(attrs.generation)))
    if attrs.metageneration:
        items.append(("x-goog-metageneration", str(attrs.metageneration)))
    for key in sorted(attrs.metadata):
        items.append((f"x-goog-meta-{key}", attrs.metadata[key]))
    if attrs.size:
        items.append(("x-goog-stored-content-length", str(attrs.size)))
    if attrs.content_encoding:
        items.append(("x-goog-stored-content-encoding", attrs.content_encoding))
    if attrs.storage_class:
        items.append(("x-goog-storage-class", attrs.storage_class))

    return httpx.Headers(items)
