"""httpx transport for Google Cloud Storage ``gs://`` URLs.

Typical use::

    import httpx
    from gsprotocol import new_transport

    async with httpx.AsyncClient(mounts={"gs://": new_transport()}) as client:
        resp = await client.get("gs://my-bucket/example.txt")

To read a noncurrent version, put its generation number in the fragment:
``gs://my-bucket/example.txt#1587160158394554``.
"""

from gsprotocol.errors import (
    BucketNotFound,
    GSProtocolError,
    InvalidGeneration,
    ObjectNotFound,
    TransportFailure,
    UpstreamStatusError,
)
from gsprotocol.models import ObjectMetadata, ReaderAttrs
from gsprotocol.transport import GSTransport, new_transport

__all__ = [
    "BucketNotFound",
    "GSProtocolError",
    "GSTransport",
    "InvalidGeneration",
    "new_transport",
    "ObjectMetadata",
    "ObjectNotFound",
    "ReaderAttrs",
    "TransportFailure",
    "UpstreamStatusError",
]
