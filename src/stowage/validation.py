"""Client-side input validation helpers for Stowage.

These run before any request is sent so obviously malformed input fails
fast with a ``ValidationError`` instead of a round trip.  Bucket naming is
only enforced strictly when *creating* a bucket; legacy buckets with looser
names can still be read.
"""

import re

from stowage.errors import InvalidBucketNameError, InvalidRegionError, ValidationError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# S3 bucket naming rules:
#   - 3-63 characters
#   - lowercase letters, digits, hyphens, and periods
#   - must start and end with a letter or digit
#   - must not be formatted as an IP address
#   - must not start with "xn--" (internationalized domain prefix)
#   - must not end with "-s3alias" or "--ol-s3"
#   - no consecutive periods ("..") allowed

_BUCKET_RE = re.compile(r"^[a-z0-9][a-z0-9.\-]{1,61}[a-z0-9]$")
_IP_RE = re.compile(r"^\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}$")

# us-east-1, sa-east-1, ap-southeast-2, us-gov-west-1, eu-central-1 ...
_REGION_RE = re.compile(r"^[a-z]{2}(-[a-z]+)+-\d{1,2}$")

_MAX_KEY_BYTES = 1024

MAX_PARTS = 10000
MAX_PART_SIZE = 5 * 1024 * 1024 * 1024
MIN_PART_SIZE = 5 * 1024 * 1024


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_bucket_name(name: str) -> None:
    """Validate a bucket name against the S3 naming rules.

    Args:
        name: The candidate bucket name.

    Raises:
        InvalidBucketNameError: If the name violates any naming rule.
    """
    if len(name) < 3 or len(name) > 63:
        raise InvalidBucketNameError(f"Bucket name must be 3-63 characters: {name!r}")

    if not _BUCKET_RE.match(name):
        raise InvalidBucketNameError(f"Bucket name has invalid characters: {name!r}")

    if _IP_RE.match(name):
        raise InvalidBucketNameError(f"Bucket name must not be an IP address: {name!r}")

    if name.startswith("xn--"):
        raise InvalidBucketNameError(f"Bucket name must not start with 'xn--': {name!r}")

    if name.endswith("-s3alias") or name.endswith("--ol-s3"):
        raise InvalidBucketNameError(f"Bucket name uses a reserved suffix: {name!r}")

    if ".." in name:
        raise InvalidBucketNameError(f"Bucket name must not contain '..': {name!r}")


def require_bucket(name: str) -> None:
    """Reject an empty bucket name.

    Raises:
        InvalidBucketNameError: If the name is empty.
    """
    if not name:
        raise InvalidBucketNameError("Bucket name must not be empty")


def validate_object_key(key: str) -> None:
    """Validate an object key.

    Args:
        key: The object key string.

    Raises:
        ValidationError: If the key is empty or exceeds 1024 bytes as UTF-8.
    """
    if not key:
        raise ValidationError("Object key must not be empty", code="InvalidArgument")
    if len(key.encode("utf-8")) > _MAX_KEY_BYTES:
        raise ValidationError(
            f"Object key exceeds {_MAX_KEY_BYTES} bytes", code="KeyTooLongError"
        )


def validate_region(region: str) -> None:
    """Validate a region identifier such as ``sa-east-1``.

    Raises:
        InvalidRegionError: If the region is empty or malformed.
    """
    if not region or not _REGION_RE.match(region):
        raise InvalidRegionError(f"Malformed region identifier: {region!r}")


def validate_part_size(part_size: int, minimum: int = MIN_PART_SIZE) -> int:
    """Validate a multipart part size.

    Args:
        part_size: Requested part size in bytes.
        minimum: Smallest accepted part size (providers reject smaller
            non-final parts).

    Returns:
        The validated part size.

    Raises:
        ValidationError: If the size is outside ``[minimum, 5 GiB]``.
    """
    if part_size < max(minimum, 1) or part_size > MAX_PART_SIZE:
        raise ValidationError(
            f"Part size must be between {max(minimum, 1)} and {MAX_PART_SIZE} bytes, "
            f"got {part_size}",
            code="InvalidArgument",
        )
    return part_size
