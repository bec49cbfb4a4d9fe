"""Resolve a ``gs://`` request into one concrete object generation.

URI layout::

    gs://<bucket>/<object-key>[#<generation>]
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import httpx

from gsprotocol.errors import InvalidGeneration
from gsprotocol.models import ObjectMetadata
from gsprotocol.storage.backend import ObjectHandle, StorageClient

logger = logging.getLogger(__name__)

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1

_GENERATION_RE = re.compile(r"^[+-]?[0-9]+$")


@dataclass(frozen=True)
class ResourceLocator:
    """The bucket, key and (optional) generation a request refers to.

    Attributes:
        bucket: The bucket name.
        key: The object key.
        generation: The pinned generation, or None for "latest".
    """

    bucket: str
    key: str
    generation: int | None = None

    def pinned(self, generation: int) -> ResourceLocator:
        """Return a copy of this locator pinned to ``generation``."""
        return ResourceLocator(self.bucket, self.key, generation)


def parse_generation(fragment: str) -> int:
    """Parse a URI fragment as a base-10 signed 64-bit integer.

    Raises:
        InvalidGeneration: If the fragment is not a valid int64.
    """
    if not _GENERATION_RE.match(fragment):
        raise InvalidGeneration(fragment, "invalid syntax")
    value = int(fragment)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise InvalidGeneration(fragment, "value out of range")
    return value


def locator_from_request(request: httpx.Request) -> ResourceLocator:
    """Build a ResourceLocator from a request.

    The bucket comes from the Host header, falling back to the URL authority
    when the header is empty.

    Raises:
        InvalidGeneration: If the URL fragment is present but malformed.
    """
    host = request.headers.get("host", "") or request.url.host
    path = request.url.path
    if path.startswith("/"):
        path = path[1:]

    generation = None
    fragment = request.url.fragment
    if fragment:
        generation = parse_generation(fragment)
    return ResourceLocator(bucket=host, key=path, generation=generation)


async def resolve(
    client: StorageClient, locator: ResourceLocator
) -> tuple[ResourceLocator, ObjectHandle, ObjectMetadata]:
    """Fetch metadata and return a handle pinned to that exact generation.

    For "latest" requests the metadata is fetched first and the handle is
    re-pinned to the generation it reports, so a later open_reader() cannot
    observe a different version written in between.

    Returns:
        The concrete locator, the pinned handle and the metadata.
    """
    obj = client.bucket(locator.bucket).object(locator.key)

    if locator.generation is not None:
        obj = obj.with_generation(locator.generation)
        attrs = await obj.fetch_attrs()
        return locator, obj, attrs

    attrs = await obj.fetch_attrs()
    logger.debug(
        "Resolved gs://%s/%s to generation %d",
        locator.bucket,
        locator.key,
        attrs.generation,
        extra={
            "bucket": locator.bucket,
            "key": locator.key,
            "generation": attrs.generation,
        },
    )
    return locator.pinned(attrs.generation), obj.with_generation(attrs.generation), attrs
