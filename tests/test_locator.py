"""Tests for request-to-object resolution."""

import httpx
import pytest

from gsprotocol.errors import InvalidGeneration, ObjectNotFound
from gsprotocol.locator import (
    ResourceLocator,
    locator_from_request,
    parse_generation,
    resolve,
)
from gsprotocol.models import ObjectMetadata

from conftest import StubObject, StubStorage


class TestParseGeneration:
    """Tests for parse_generation()."""

    @pytest.mark.parametrize(
        "fragment,expected",
        [
            ("1234567890", 1234567890),
            ("+5", 5),
            ("-1", -1),
            ("0", 0),
            ("9223372036854775807", 9223372036854775807),
            ("-9223372036854775808", -9223372036854775808),
        ],
    )
    def test_valid(self, fragment, expected):
        assert parse_generation(fragment) == expected

    @pytest.mark.parametrize("fragment", ["abc", "12a", "1.5", " 1", "0x10", "+", "1_000"])
    def test_invalid_syntax(self, fragment):
        with pytest.raises(InvalidGeneration) as exc_info:
            parse_generation(fragment)
        assert exc_info.value.fragment == fragment

    def test_out_of_range(self):
        with pytest.raises(InvalidGeneration, match="out of range"):
            parse_generation("9223372036854775808")

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            parse_generation("abc")


class TestLocatorFromRequest:
    """Tests for locator_from_request()."""

    def test_bucket_key_generation(self):
        request = httpx.Request("GET", "gs://bucket-name/path/to/object.txt#1234567890")
        assert locator_from_request(request) == ResourceLocator(
            "bucket-name", "path/to/object.txt", 1234567890
        )

    def test_no_fragment_means_latest(self):
        request = httpx.Request("GET", "gs://bucket-name/object-key")
        assert locator_from_request(request).generation is None

    def test_host_header_wins(self):
        request = httpx.Request(
            "GET", "gs://bucket-name/object-key", headers={"Host": "other-bucket"}
        )
        assert locator_from_request(request).bucket == "other-bucket"

    def test_empty_host_falls_back_to_url(self):
        request = httpx.Request("GET", "gs://bucket-name/object-key")
        request.headers["Host"] = ""
        assert locator_from_request(request).bucket == "bucket-name"

    def test_only_one_leading_slash_removed(self):
        request = httpx.Request("GET", "gs://bucket-name//object-key")
        assert locator_from_request(request).key == "/object-key"

    def test_invalid_fragment(self):
        request = httpx.Request("GET", "gs://bucket-name/object-key#latest")
        with pytest.raises(InvalidGeneration):
            locator_from_request(request)


class TestResolve:
    """Tests for resolve()."""

    async def test_latest_is_repinned(self):
        """The handle returned for "latest" is pinned to the fetched generation."""
        obj = StubObject(attrs=ObjectMetadata(generation=42))
        storage = StubStorage({"bucket-name": {"object-key": obj}})

        locator, handle, attrs = await resolve(storage, ResourceLocator("bucket-name", "object-key"))

        assert locator == ResourceLocator("bucket-name", "object-key", 42)
        assert attrs.generation == 42
        assert handle.generation == 42
        assert obj.fetched == [None]
        assert obj.pinned == [42]

    async def test_pinned_generation(self):
        """A pinned request fetches metadata for that generation only."""
        obj = StubObject(attrs=ObjectMetadata(generation=7))
        storage = StubStorage({"bucket-name": {"object-key": obj}})

        locator, handle, _ = await resolve(
            storage, ResourceLocator("bucket-name", "object-key", 7)
        )

        assert locator.generation == 7
        assert handle.generation == 7
        assert obj.fetched == [7]
        assert obj.pinned == [7]

    async def test_not_found_propagates(self):
        storage = StubStorage({"bucket-name": {}})
        with pytest.raises(ObjectNotFound):
            await resolve(storage, ResourceLocator("bucket-name", "missing"))
