"""Tests for client-side input validation."""

import pytest

from stowage.errors import InvalidBucketNameError, InvalidRegionError, ValidationError
from stowage.validation import (
    MAX_PART_SIZE,
    MIN_PART_SIZE,
    require_bucket,
    validate_bucket_name,
    validate_object_key,
    validate_part_size,
    validate_region,
)


class TestValidateBucketName:
    """Tests for validate_bucket_name()."""

    @pytest.mark.parametrize(
        "name", ["abc", "my-bucket", "my.bucket.name", "bucket123", "a" * 63]
    )
    def test_valid(self, name):
        validate_bucket_name(name)

    @pytest.mark.parametrize(
        "name",
        [
            "",
            "ab",
            "a" * 64,
            "MyBucket",
            "my_bucket",
            "-bucket",
            "bucket-",
            "192.168.1.1",
            "xn--bucket",
            "bucket-s3alias",
            "bucket--ol-s3",
            "my..bucket",
            "my@bucket!",
        ],
    )
    def test_invalid(self, name):
        with pytest.raises(InvalidBucketNameError):
            validate_bucket_name(name)

    def test_error_code(self):
        with pytest.raises(InvalidBucketNameError) as exc_info:
            validate_bucket_name("UPPER")
        assert exc_info.value.code == "InvalidBucketName"


class TestRequireBucket:
    """Tests for require_bucket()."""

    def test_legacy_name_allowed(self):
        """Existing buckets with looser names can still be addressed."""
        require_bucket("Legacy_Bucket")

    def test_empty_rejected(self):
        with pytest.raises(InvalidBucketNameError):
            require_bucket("")


class TestValidateObjectKey:
    """Tests for validate_object_key()."""

    def test_valid_key_with_slashes(self):
        validate_object_key("path/to/my file.txt")

    def test_valid_at_limit(self):
        """A key of exactly 1024 bytes is accepted."""
        validate_object_key("a" * 1024)

    def test_empty(self):
        with pytest.raises(ValidationError):
            validate_object_key("")

    def test_too_long_multibyte(self):
        """342 three-byte characters encode to 1026 bytes."""
        with pytest.raises(ValidationError) as exc_info:
            validate_object_key("一" * 342)
        assert exc_info.value.code == "KeyTooLongError"


class TestValidateRegion:
    """Tests for validate_region()."""

    @pytest.mark.parametrize(
        "region", ["us-east-1", "sa-east-1", "ap-southeast-2", "us-gov-west-1", "eu-central-1"]
    )
    def test_valid(self, region):
        validate_region(region)

    @pytest.mark.parametrize("region", ["", "sa-east", "SA-EAST-1", "nowhere", "sa east 1"])
    def test_invalid(self, region):
        with pytest.raises(InvalidRegionError):
            validate_region(region)


class TestValidatePartSize:
    """Tests for validate_part_size()."""

    def test_default_bounds(self):
        assert validate_part_size(MIN_PART_SIZE) == MIN_PART_SIZE
        assert validate_part_size(MAX_PART_SIZE) == MAX_PART_SIZE

    def test_below_minimum(self):
        with pytest.raises(ValidationError):
            validate_part_size(MIN_PART_SIZE - 1)

    def test_above_maximum(self):
        with pytest.raises(ValidationError):
            validate_part_size(MAX_PART_SIZE + 1)

    def test_custom_minimum(self):
        assert validate_part_size(10, minimum=1) == 10

    def test_zero_rejected_even_with_zero_minimum(self):
        with pytest.raises(ValidationError):
            validate_part_size(0, minimum=0)
