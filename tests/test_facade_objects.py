"""Tests for single-shot object operations against the emulator."""

import hashlib
import io
from datetime import datetime

import pytest

from stowage.errors import (
    AccessDeniedError,
    BucketNotFoundError,
    ObjectNotFoundError,
    TransportError,
    ValidationError,
)


class TestUploadDownload:
    """Tests for upload_object() and download_object()."""

    def test_round_trip(self, facade, emulator, bucket):
        etag = facade.upload_object(bucket, "hello.txt", b"hello world")
        assert etag == hashlib.md5(b"hello world").hexdigest()
        assert facade.download_object(bucket, "hello.txt") == b"hello world"

    def test_stream_source(self, facade, bucket):
        facade.upload_object(bucket, "stream.bin", io.BytesIO(b"\x00\x01\x02"))
        assert facade.download_object(bucket, "stream.bin") == b"\x00\x01\x02"

    def test_unusual_key(self, facade, emulator, bucket):
        """Spaces, plus signs and non-ASCII keys survive the round trip."""
        key = "dir/ação file+1 (copy).txt"
        facade.upload_object(bucket, key, b"x")
        assert key in emulator.buckets[bucket].objects
        assert facade.download_object(bucket, key) == b"x"

    @pytest.mark.parametrize("key", ["a/../b", "./x", "dir/./y", "..", "."])
    def test_dot_segment_keys(self, facade, emulator, bucket, key):
        """Keys are opaque: dot segments are stored and fetched as written."""
        facade.upload_object(bucket, key, b"payload")
        assert list(emulator.buckets[bucket].objects) == [key]
        assert facade.download_object(bucket, key) == b"payload"
        assert facade.head_object(bucket, key).size == len(b"payload")
        assert [o.key for o in facade.list_objects(bucket)] == [key]

    def test_content_type(self, facade, emulator, bucket):
        facade.upload_object(bucket, "page.html", b"<p>", content_type="text/html")
        assert emulator.buckets[bucket].objects["page.html"].content_type == "text/html"

    def test_empty_object(self, facade, bucket):
        facade.upload_object(bucket, "empty", b"")
        assert facade.download_object(bucket, "empty") == b""

    def test_overwrite(self, facade, bucket):
        facade.upload_object(bucket, "k", b"one")
        facade.upload_object(bucket, "k", b"two")
        assert facade.download_object(bucket, "k") == b"two"

    def test_missing_bucket(self, facade):
        with pytest.raises(BucketNotFoundError):
            facade.upload_object("no-such-bucket", "k", b"x")

    def test_missing_key(self, facade, bucket):
        with pytest.raises(ObjectNotFoundError):
            facade.download_object(bucket, "nope")

    def test_forbidden_bucket(self, facade, emulator, bucket):
        emulator.forbidden_buckets.add(bucket)
        with pytest.raises(AccessDeniedError):
            facade.upload_object(bucket, "k", b"x")

    def test_empty_key_rejected_locally(self, facade, bucket):
        with pytest.raises(ValidationError):
            facade.upload_object(bucket, "", b"x")


class TestHeadObject:
    """Tests for head_object()."""

    def test_metadata(self, facade, bucket):
        facade.upload_object(bucket, "doc.json", b"{}", content_type="application/json")
        info = facade.head_object(bucket, "doc.json")
        assert info.bucket == bucket
        assert info.key == "doc.json"
        assert info.size == 2
        assert info.etag == hashlib.md5(b"{}").hexdigest()
        assert info.content_type == "application/json"
        assert isinstance(info.last_modified, datetime)

    def test_missing(self, facade, bucket):
        """HEAD has no error body, yet a missing key is still ObjectNotFoundError."""
        with pytest.raises(ObjectNotFoundError):
            facade.head_object(bucket, "nope")


class TestCopyObject:
    """Tests for copy_object() and copy_to_folder()."""

    def test_copy_across_buckets(self, facade, bucket):
        facade.create_bucket("other-bucket")
        source_etag = facade.upload_object(bucket, "src file.txt", b"payload")
        etag = facade.copy_object(bucket, "src file.txt", "other-bucket", "dst.txt")
        assert etag == source_etag
        assert facade.download_object("other-bucket", "dst.txt") == b"payload"
        assert facade.download_object(bucket, "src file.txt") == b"payload"

    def test_copy_to_folder(self, facade, bucket):
        facade.upload_object(bucket, "report.csv", b"a,b")
        facade.copy_to_folder(bucket, "report.csv", "archive/")
        assert facade.download_object(bucket, "archive/report.csv") == b"a,b"

    def test_missing_source(self, facade, bucket):
        with pytest.raises(ObjectNotFoundError):
            facade.copy_object(bucket, "nope", bucket, "dst")

    def test_error_inside_success_response(self, facade, emulator, bucket):
        """A copy that fails after the 200 status line is still an error."""
        facade.upload_object(bucket, "src", b"x")
        emulator.copy_error = "InternalError"
        with pytest.raises(TransportError) as exc_info:
            facade.copy_object(bucket, "src", bucket, "dst")
        assert exc_info.value.code == "InternalError"
        assert "dst" not in emulator.buckets[bucket].objects


class TestFiles:
    """Tests for upload_file() and download_file()."""

    def test_round_trip(self, facade, bucket, tmp_path):
        source = tmp_path / "in.bin"
        source.write_bytes(b"file contents")
        facade.upload_file(bucket, "in.bin", source)

        target = tmp_path / "out.bin"
        written = facade.download_file(bucket, "in.bin", target)
        assert written == len(b"file contents")
        assert target.read_bytes() == b"file contents"
