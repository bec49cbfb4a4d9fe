"""Tests for response header synthesis from object metadata."""

from datetime import datetime, timezone

from gsprotocol.headers import format_http_date, make_etag, make_headers
from gsprotocol.models import ObjectMetadata

from conftest import CRC32C, ETAG, MD5, UPDATED


def _full_attrs(**overrides) -> ObjectMetadata:
    fields = dict(
        content_type="text/plain",
        content_language="ja-JP",
        content_encoding="identity",
        cache_control="public, max-age=60",
        content_disposition="inline",
        size=27,
        updated=UPDATED,
        md5=MD5,
        crc32c=CRC32C,
        generation=1234567890,
        metageneration=5,
        storage_class="STANDARD",
        metadata={"foo": "bar"},
    )
    fields.update(overrides)
    return ObjectMetadata(**fields)


class TestFormatHttpDate:
    """Tests for format_http_date()."""

    def test_rfc1123_gmt(self):
        assert format_http_date(UPDATED) == "Wed, 15 Apr 2020 00:56:00 GMT"

    def test_drops_subseconds(self):
        dt = datetime(2020, 4, 15, 0, 56, 0, 999999, tzinfo=timezone.utc)
        assert format_http_date(dt) == "Wed, 15 Apr 2020 00:56:00 GMT"

    def test_naive_is_utc(self):
        assert format_http_date(datetime(2020, 4, 15, 0, 56)) == "Wed, 15 Apr 2020 00:56:00 GMT"


class TestMakeEtag:
    def test_quoted_lowercase_hex(self):
        assert make_etag(MD5) == ETAG


class TestMakeHeaders:
    """Tests for make_headers()."""

    def test_full_header_set(self):
        headers = make_headers(_full_attrs())
        assert headers["content-type"] == "text/plain"
        assert headers["content-language"] == "ja-JP"
        assert headers["cache-control"] == "public, max-age=60"
        assert headers["content-length"] == "27"
        assert headers["content-encoding"] == "identity"
        assert headers["content-disposition"] == "inline"
        assert headers["last-modified"] == "Wed, 15 Apr 2020 00:56:00 GMT"
        assert headers["etag"] == ETAG
        assert headers["x-goog-generation"] == "1234567890"
        assert headers["x-goog-metageneration"] == "5"
        assert headers["x-goog-meta-foo"] == "bar"
        assert headers["x-goog-stored-content-length"] == "27"
        assert headers["x-goog-stored-content-encoding"] == "identity"
        assert headers["x-goog-storage-class"] == "STANDARD"

    def test_both_hashes_emitted(self):
        """x-goog-hash carries md5 and crc32c as two separate values."""
        headers = make_headers(_full_attrs())
        assert headers.get_list("x-goog-hash") == [
            "md5=PHOcuB2veZvOiwtUlfNVxA==",
            "crc32c=55LWeQ==",
        ]

    def test_empty_metadata_only_crc32c(self):
        """A zero-valued object still reports crc32c, and nothing else."""
        headers = make_headers(ObjectMetadata())
        assert list(headers.multi_items()) == [("x-goog-hash", "crc32c=AAAAAA==")]

    def test_no_md5_means_no_etag(self):
        """Composite objects have no MD5, hence no ETag."""
        headers = make_headers(_full_attrs(md5=b""))
        assert "etag" not in headers
        assert headers.get_list("x-goog-hash") == ["crc32c=55LWeQ=="]

    def test_zero_size_omits_lengths(self):
        headers = make_headers(_full_attrs(size=0))
        assert "content-length" not in headers
        assert "x-goog-stored-content-length" not in headers

    def test_no_updated_omits_last_modified(self):
        headers = make_headers(_full_attrs(updated=None))
        assert "last-modified" not in headers

    def test_custom_metadata_prefixed(self):
        headers = make_headers(_full_attrs(metadata={"b-key": "2", "a-key": "1"}))
        meta = [(k, v) for k, v in headers.multi_items() if k.startswith("x-goog-meta-")]
        assert meta == [("x-goog-meta-a-key", "1"), ("x-goog-meta-b-key", "2")]

    def test_idempotent(self):
        attrs = _full_attrs()
        first = list(make_headers(attrs).multi_items())
        second = list(make_headers(attrs).multi_items())
        assert first == second
