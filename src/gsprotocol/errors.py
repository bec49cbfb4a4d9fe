"""Error definitions for gsprotocol.

Errors fall into two groups. Store-side conditions that have an HTTP meaning
(missing objects, structured upstream errors) are recovered into responses by
the transport. Everything else is a hard failure raised to the caller.
"""

from __future__ import annotations

from collections.abc import Mapping

import httpx


class GSProtocolError(Exception):
    """Base class for gsprotocol errors."""


class InvalidGeneration(GSProtocolError, ValueError):
    """The URI fragment is not a base-10 signed 64-bit generation number.

    Attributes:
        fragment: The offending fragment text.
    """

    def __init__(self, fragment: str, reason: str = "") -> None:
        message = f"gsprotocol: invalid generation {fragment}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.fragment = fragment


class NotFoundError(GSProtocolError):
    """The store reports that the requested resource does not exist."""

    http_status = 404


class ObjectNotFound(NotFoundError):
    """The object (or the pinned generation of it) does not exist."""

    def __init__(self, bucket: str = "", key: str = "") -> None:
        super().__init__(f"object doesn't exist: {bucket}/{key}")
        self.bucket = bucket
        self.key = key


class BucketNotFound(NotFoundError):
    """The bucket does not exist."""

    def __init__(self, bucket: str = "") -> None:
        super().__init__(f"bucket doesn't exist: {bucket}")
        self.bucket = bucket


class UpstreamStatusError(GSProtocolError):
    """A structured error returned by the store with its own HTTP status.

    Attributes:
        http_status: The status code reported by the store.
        body: The error payload, passed to the caller verbatim.
        headers: Response headers that came with the error.
    """

    def __init__(
        self,
        http_status: int,
        body: str = "",
        headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(f"upstream error {http_status}: {body}")
        self.http_status = http_status
        self.body = body
        self.headers = dict(headers or {})


class TransportFailure(httpx.TransportError):
    """The store could not be reached or the connection failed mid-request.

    Subclasses httpx.TransportError so that httpx callers handle it like any
    other connection-level failure.
    """
