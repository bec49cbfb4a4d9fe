"""Data model types for gsprotocol.

These dataclasses are read-only snapshots of what the object store reports
for one object generation. The transport reads them, it never mutates them.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class ObjectMetadata:
    """Attributes of a specific object generation.

    Zero values (empty string, 0, empty bytes, None) mean "not set".

    Attributes:
        content_type: The Content-Type stored with the object.
        content_language: The Content-Language stored with the object.
        content_encoding: The Content-Encoding stored with the object.
        cache_control: The Cache-Control stored with the object.
        content_disposition: The Content-Disposition stored with the object.
        size: Object size in bytes.
        updated: Last modification time (timezone-aware), or None.
        md5: Raw MD5 digest bytes, empty for composite objects.
        crc32c: CRC32-C checksum as an unsigned 32-bit integer.
        generation: Generation number of this version.
        metageneration: Metadata generation number of this version.
        storage_class: Storage class name, e.g. "STANDARD".
        metadata: Custom key/value metadata.
    """

    content_type: str = ""
    content_language: str = ""
    content_encoding: str = ""
    cache_control: str = ""
    content_disposition: str = ""
    size: int = 0
    updated: datetime | None = None
    md5: bytes = b""
    crc32c: int = 0
    generation: int = 0
    metageneration: int = 0
    storage_class: str = ""
    metadata: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_resource(cls, resource: Mapping[str, Any]) -> ObjectMetadata:
        """Build metadata from a GCS JSON API object resource.

        Args:
            resource: The decoded ``storage#object`` JSON document.

        Returns:
            The parsed ObjectMetadata.
        """
        return cls(
            content_type=resource.get("contentType", ""),
            content_language=resource.get("contentLanguage", ""),
            content_encoding=resource.get("contentEncoding", ""),
            cache_control=resource.get("cacheControl", ""),
            content_disposition=resource.get("contentDisposition", ""),
            size=int(resource.get("size", 0)),
            updated=parse_rfc3339(resource.get("updated", "")),
            md5=_decode_b64(resource.get("md5Hash", "")),
            crc32c=int.from_bytes(_decode_b64(resource.get("crc32c", "")), "big"),
            generation=int(resource.get("generation", 0)),
            metageneration=int(resource.get("metageneration", 0)),
            storage_class=resource.get("storageClass", ""),
            metadata=dict(resource.get("metadata") or {}),
        )


@dataclass(frozen=True)
class ReaderAttrs:
    """Attributes observed when a byte stream is opened.

    Informational only: response headers are always synthesized from
    ObjectMetadata.
    """

    content_type: str = ""
    content_encoding: str = ""
    cache_control: str = ""
    size: int = 0
    last_modified: datetime | None = None


def parse_rfc3339(value: str) -> datetime | None:
    """Parse a GCS RFC 3339 timestamp, e.g. ``2020-04-15T00:56:00.123Z``.

    Returns:
        A timezone-aware datetime in UTC, or None if the value is empty or
        cannot be parsed.
    """
    if not value:
        return None
    for fmt in ("%Y-%m-%dT%H:%M:%S.%fZ", "%Y-%m-%dT%H:%M:%SZ"):
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def _decode_b64(value: str) -> bytes:
    if not value:
        return b""
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return b""
