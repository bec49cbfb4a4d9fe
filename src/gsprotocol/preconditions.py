"""Conditional request evaluation (RFC 7232).

Everything here is a pure function of the request's conditional headers,
the synthesized response headers and the object's modification time.

Evaluation order (RFC 7232 section 6):
    1. If-Match, or If-Unmodified-Since when If-Match is absent
       -> 412 Precondition Failed when the condition is false
    2. If-None-Match, or If-Modified-Since when If-None-Match is absent
       -> 304 Not Modified when the condition is false
    3. otherwise the request proceeds
"""

from __future__ import annotations

import email.utils
import enum
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx

# Whitespace trimmed around list members (textproto-style).
_WS = " \t\r\n"


class CondResult(enum.Enum):
    """Result of a single precondition check."""

    NONE = "none"  # header absent or not applicable
    TRUE = "true"
    FALSE = "false"


class Disposition(enum.Enum):
    """What the dispatcher should do after evaluating all preconditions."""

    PROCEED = 200
    NOT_MODIFIED = 304
    PRECONDITION_FAILED = 412


@dataclass(frozen=True)
class ConditionalHeaders:
    """The conditional headers of a request. Empty values count as absent."""

    if_match: str | None = None
    if_none_match: str | None = None
    if_modified_since: str | None = None
    if_unmodified_since: str | None = None

    @classmethod
    def from_headers(cls, headers: httpx.Headers) -> ConditionalHeaders:
        return cls(
            if_match=headers.get("if-match") or None,
            if_none_match=headers.get("if-none-match") or None,
            if_modified_since=headers.get("if-modified-since") or None,
            if_unmodified_since=headers.get("if-unmodified-since") or None,
        )


# ---------------------------------------------------------------------------
# ETag scanning
# ---------------------------------------------------------------------------


def scan_etag(s: str) -> tuple[str, str]:
    """Scan one entity tag from the start of ``s``.

    An ETag is either ``W/"text"`` or ``"text"`` where text consists of the
    characters 0x21, 0x23-0x7E and 0x80-0xFF (RFC 7232 section 2.3).

    Returns:
        The ETag and the text remaining after it, or ("", "") if no
        syntactically valid ETag starts at ``s``.
    """
    s = s.strip(_WS)
    start = 2 if s.startswith("W/") else 0
    if len(s) - start < 2 or s[start] != '"':
        return "", ""
    for i in range(start + 1, len(s)):
        c = ord(s[i])
        if c == 0x21 or 0x23 <= c <= 0x7E or c >= 0x80:
            continue
        if c == 0x22:
            return s[: i + 1], s[i + 1 :]
        return "", ""
    return "", ""


def etag_strong_match(a: str, b: str) -> bool:
    """Strong comparison: byte-equal and neither is weak."""
    return a == b and a != "" and a[0] == '"'


def etag_weak_match(a: str, b: str) -> bool:
    """Weak comparison: equal once any ``W/`` prefix is removed."""
    return a.removeprefix("W/") == b.removeprefix("W/")


def _match_list(
    value: str,
    etag: str,
    match: Callable[[str, str], bool],
    on_wildcard: CondResult,
    on_match: CondResult,
) -> CondResult | None:
    """Walk a comma-separated ETag list; stop at the first malformed token."""
    while True:
        value = value.strip(_WS)
        if not value:
            break
        if value[0] == ",":
            value = value[1:]
            continue
        if value[0] == "*":
            return on_wildcard
        tag, remain = scan_etag(value)
        if not tag:
            break
        if match(tag, etag):
            return on_match
        value = remain
    return None


# ---------------------------------------------------------------------------
# Date handling
# ---------------------------------------------------------------------------


def _parse_http_date(date_str: str) -> datetime | None:
    """Parse an HTTP date (RFC 1123, RFC 850 or asctime) as UTC.

    Returns:
        A timezone-aware datetime, or None if parsing fails.
    """
    try:
        dt = email.utils.parsedate_to_datetime(date_str)
    except (ValueError, TypeError, IndexError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _not_modified_since(header_value: str | None, updated: datetime | None) -> CondResult:
    """TRUE when the object was not modified after the header's date."""
    if not header_value or updated is None:
        return CondResult.NONE
    t = _parse_http_date(header_value)
    if t is None:
        return CondResult.NONE

    # Last-Modified carries whole seconds only, so compare at that precision.
    modtime = updated.replace(microsecond=0)
    if modtime.tzinfo is None:
        modtime = modtime.replace(tzinfo=timezone.utc)
    if modtime <= t:
        return CondResult.TRUE
    return CondResult.FALSE


# ---------------------------------------------------------------------------
# Individual checks
# ---------------------------------------------------------------------------


def check_if_match(conditions: ConditionalHeaders, headers: httpx.Headers) -> CondResult:
    if not conditions.if_match:
        return CondResult.NONE
    result = _match_list(
        conditions.if_match,
        headers.get("etag", ""),
        etag_strong_match,
        on_wildcard=CondResult.TRUE,
        on_match=CondResult.TRUE,
    )
    return result or CondResult.FALSE


def check_if_unmodified_since(
    conditions: ConditionalHeaders, updated: datetime | None
) -> CondResult:
    return _not_modified_since(conditions.if_unmodified_since, updated)


def check_if_none_match(conditions: ConditionalHeaders, headers: httpx.Headers) -> CondResult:
    if not conditions.if_none_match:
        return CondResult.NONE
    result = _match_list(
        conditions.if_none_match,
        headers.get("etag", ""),
        etag_weak_match,
        on_wildcard=CondResult.FALSE,
        on_match=CondResult.FALSE,
    )
    return result or CondResult.TRUE


def check_if_modified_since(
    conditions: ConditionalHeaders, updated: datetime | None
) -> CondResult:
    result = _not_modified_since(conditions.if_modified_since, updated)
    if result is CondResult.TRUE:
        return CondResult.FALSE
    if result is CondResult.FALSE:
        return CondResult.TRUE
    return result


# ---------------------------------------------------------------------------
# Decision
# ---------------------------------------------------------------------------


def evaluate_preconditions(
    conditions: ConditionalHeaders,
    headers: httpx.Headers,
    updated: datetime | None,
) -> Disposition:
    """Decide between proceeding, 304 and 412 for a request.

    Args:
        conditions: The request's conditional headers.
        headers: Response headers synthesized from the object metadata.
        updated: The object's modification time, or None.

    Returns:
        The final disposition of the request.
    """
    ch = check_if_match(conditions, headers)
    if ch is CondResult.NONE:
        ch = check_if_unmodified_since(conditions, updated)
    if ch is CondResult.FALSE:
        return Disposition.PRECONDITION_FAILED

    ch = check_if_none_match(conditions, headers)
    if ch is CondResult.NONE:
        ch = check_if_modified_since(conditions, updated)
    if ch is CondResult.FALSE:
        return Disposition.NOT_MODIFIED

    return Disposition.PROCEED


def not_modified_headers(headers: httpx.Headers) -> httpx.Headers:
    """Return the header set for a 304 response.

    RFC 7232 section 4.1: representation metadata other than validators is
    dropped, and Last-Modified is only kept when there is no ETag.
    """
    result = headers.copy()
    for name in ("content-type", "content-length"):
        if name in result:
            del result[name]
    if result.get("etag") and "last-modified" in result:
        del result["last-modified"]
    return result
