"""Tests for the error taxonomy and classify_error()."""

import pytest

from stowage.errors import (
    AccessDeniedError,
    AuthError,
    BucketAlreadyOwnedError,
    BucketNotEmptyError,
    BucketNotFoundError,
    DeleteObjectsError,
    InvalidBucketNameError,
    InvalidRegionError,
    NameConflictError,
    NotFoundError,
    ObjectNotFoundError,
    StowageError,
    TransportError,
    UploadNotFoundError,
    ValidationError,
    classify_error,
)
from stowage.models import DeleteFailure


class TestClassifyError:
    """Tests for classify_error()."""

    @pytest.mark.parametrize(
        "code,status,expected",
        [
            ("AccessDenied", 403, AccessDeniedError),
            ("SignatureDoesNotMatch", 403, AuthError),
            ("ExpiredToken", 400, AuthError),
            ("NoSuchBucket", 404, BucketNotFoundError),
            ("NoSuchKey", 404, ObjectNotFoundError),
            ("NoSuchUpload", 404, UploadNotFoundError),
            ("BucketAlreadyExists", 409, NameConflictError),
            ("BucketAlreadyOwnedByYou", 409, BucketAlreadyOwnedError),
            ("BucketNotEmpty", 409, BucketNotEmptyError),
            ("InvalidBucketName", 400, InvalidBucketNameError),
            ("InvalidLocationConstraint", 400, InvalidRegionError),
            ("IllegalLocationConstraintException", 400, InvalidRegionError),
            ("EntityTooSmall", 400, ValidationError),
            ("InternalError", 500, TransportError),
            ("SlowDown", 503, TransportError),
        ],
    )
    def test_code_mapping(self, code, status, expected):
        """Known provider codes map onto their taxonomy class."""
        error = classify_error(status, code=code, message="msg")
        assert type(error) is expected
        assert error.code == code
        assert error.http_status == status

    def test_code_wins_over_status(self):
        """The error code decides the class even if the status disagrees."""
        assert isinstance(classify_error(400, code="NoSuchKey"), ObjectNotFoundError)

    @pytest.mark.parametrize(
        "status,expected",
        [(400, ValidationError), (401, AuthError), (403, AccessDeniedError), (404, NotFoundError)],
    )
    def test_status_only(self, status, expected):
        """Bodyless responses (HEAD) are classified by status."""
        assert type(classify_error(status)) is expected

    def test_unknown_becomes_transport_error(self):
        error = classify_error(502, code="SomethingNew")
        assert isinstance(error, TransportError)
        assert error.code == "SomethingNew"

    def test_unknown_409_is_not_a_name_conflict(self):
        """A 409 without a known code is not assumed to be a name conflict."""
        assert type(classify_error(409, code="OperationAborted")) is TransportError

    def test_message_defaults(self):
        """Without message or code the HTTP status is used."""
        assert classify_error(500).message == "HTTP 500"

    def test_request_id_and_resource_kept(self):
        error = classify_error(404, code="NoSuchKey", resource="/b/k", request_id="RID")
        assert error.resource == "/b/k"
        assert error.request_id == "RID"


class TestStowageError:
    """Tests for StowageError construction and formatting."""

    def test_defaults_from_class(self):
        error = BucketNotFoundError()
        assert error.code == "NoSuchBucket"
        assert error.http_status == 404
        assert error.message == "NoSuchBucket"

    def test_str_includes_status_and_resource(self):
        error = AccessDeniedError("nope", resource="/secret")
        assert str(error) == "AccessDenied: nope (HTTP 403) [/secret]"

    def test_hierarchy(self):
        """Every specific error is catchable as StowageError."""
        assert issubclass(AccessDeniedError, AuthError)
        assert issubclass(ObjectNotFoundError, NotFoundError)
        assert issubclass(BucketAlreadyOwnedError, NameConflictError)
        assert issubclass(InvalidRegionError, ValidationError)
        for cls in (AuthError, NotFoundError, TransportError, DeleteObjectsError):
            assert issubclass(cls, StowageError)


class TestDeleteObjectsError:
    """Tests for DeleteObjectsError."""

    def test_failures_listed(self):
        failures = [DeleteFailure(key=f"k{i}", code="AccessDenied") for i in range(7)]
        error = DeleteObjectsError(failures, bucket="b")
        assert error.failures == failures
        assert "7 object(s)" in error.message
        assert "(+2 more)" in error.message
        assert error.resource == "b"
