"""S3 XML request rendering and response parsing helpers for Stowage."""

from __future__ import annotations

import urllib.parse
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable
from xml.sax.saxutils import escape as _sax_escape

from stowage.errors import TransportError
from stowage.models import Bucket, CompletedPart, DeleteFailure, MultipartUploadSummary, ObjectInfo

S3_NAMESPACE = "http://s3.amazonaws.com/doc/2006-03-01/"


def _escape_xml(value: str) -> str:
    """Escape special XML characters in a string value."""
    return _sax_escape(str(value))


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


def render_create_bucket_configuration(region: str) -> str:
    """Render a CreateBucketConfiguration body.

    The us-east-1 quirk: that region must be requested with no body at all,
    so an empty string is returned for it.

    Args:
        region: The region to create the bucket in.

    Returns:
        The XML body, or "" for us-east-1.
    """
    if region == "us-east-1" or not region:
        return ""
    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<CreateBucketConfiguration xmlns="{S3_NAMESPACE}">',
        f"<LocationConstraint>{_escape_xml(region)}</LocationConstraint>",
        "</CreateBucketConfiguration>",
    ]
    return "\n".join(parts)


def render_complete_multipart_upload(parts: Iterable[CompletedPart]) -> str:
    """Render a CompleteMultipartUpload body.

    Args:
        parts: Completed parts, already in ascending part-number order.

    Returns:
        The XML body.
    """
    xml_parts = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<CompleteMultipartUpload xmlns="{S3_NAMESPACE}">',
    ]
    for part in parts:
        xml_parts.append("<Part>")
        xml_parts.append(f"<PartNumber>{part.part_number}</PartNumber>")
        xml_parts.append(f"<ETag>{_escape_xml(quote_etag(part.etag))}</ETag>")
        xml_parts.append("</Part>")
    xml_parts.append("</CompleteMultipartUpload>")
    return "\n".join(xml_parts)


def render_delete_objects(keys: Iterable[str], quiet: bool = True) -> str:
    """Render a multi-object Delete body.

    Args:
        keys: Keys to delete (at most 1000 per request).
        quiet: Ask the provider to report only failures.

    Returns:
        The XML body.
    """
    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<Delete xmlns="{S3_NAMESPACE}">',
        f"<Quiet>{str(quiet).lower()}</Quiet>",
    ]
    for key in keys:
        parts.append(f"<Object><Key>{_escape_xml(key)}</Key></Object>")
    parts.append("</Delete>")
    return "\n".join(parts)


# ---------------------------------------------------------------------------
# Response bodies
# ---------------------------------------------------------------------------


@dataclass
class ListObjectsPage:
    """One page of a ListObjectsV2 response."""

    objects: list[ObjectInfo] = field(default_factory=list)
    is_truncated: bool = False
    next_continuation_token: str | None = None


@dataclass
class ListBucketsPage:
    """One page of a ListBuckets response."""

    buckets: list[Bucket] = field(default_factory=list)
    continuation_token: str | None = None


@dataclass
class ListUploadsPage:
    """One page of a ListMultipartUploads response."""

    uploads: list[MultipartUploadSummary] = field(default_factory=list)
    is_truncated: bool = False
    next_key_marker: str | None = None
    next_upload_id_marker: str | None = None


def parse_error(body: bytes) -> dict[str, str] | None:
    """Parse an S3 ``<Error>`` body.

    Returns:
        A dict with ``code``, ``message``, ``resource`` and ``request_id``,
        or None if the body is empty or not an Error document.
    """
    if not body or not body.strip():
        return None
    try:
        root = ET.fromstring(body)
    except ET.ParseError:
        return None
    if _local_name(root.tag) != "Error":
        return None
    return {
        "code": _text(root, "Code"),
        "message": _text(root, "Message"),
        "resource": _text(root, "Resource"),
        "request_id": _text(root, "RequestId"),
    }


def parse_list_buckets(body: bytes) -> ListBucketsPage:
    """Parse a ListAllMyBucketsResult body."""
    root = _parse(body, "ListAllMyBucketsResult")
    page = ListBucketsPage(continuation_token=_text(root, "ContinuationToken") or None)
    buckets_elem = _find(root, "Buckets")
    if buckets_elem is None:
        return page
    for elem in _findall(buckets_elem, "Bucket"):
        page.buckets.append(
            Bucket(
                name=_text(elem, "Name"),
                region=_text(elem, "BucketRegion"),
                created_at=parse_timestamp(_text(elem, "CreationDate")),
            )
        )
    return page


def parse_list_objects_v2(body: bytes, bucket: str) -> ListObjectsPage:
    """Parse a ListBucketResult (v2) body.

    Keys are URL-decoded when the response declares ``EncodingType=url``.
    """
    root = _parse(body, "ListBucketResult")
    url_encoded = _text(root, "EncodingType") == "url"

    page = ListObjectsPage(
        is_truncated=_text(root, "IsTruncated").lower() == "true",
        next_continuation_token=_text(root, "NextContinuationToken") or None,
    )
    for elem in _findall(root, "Contents"):
        key = _text(elem, "Key", strip=False)
        if url_encoded:
            key = urllib.parse.unquote_plus(key)
        size_text = _text(elem, "Size")
        page.objects.append(
            ObjectInfo(
                bucket=bucket,
                key=key,
                size=int(size_text) if size_text else 0,
                etag=strip_etag(_text(elem, "ETag")) or None,
                last_modified=parse_timestamp(_text(elem, "LastModified")),
                storage_class=_text(elem, "StorageClass") or None,
            )
        )
    return page


def parse_initiate_multipart_upload(body: bytes) -> str:
    """Parse an InitiateMultipartUploadResult body and return the UploadId."""
    root = _parse(body, "InitiateMultipartUploadResult")
    upload_id = _text(root, "UploadId")
    if not upload_id:
        raise TransportError("Response missing UploadId", code="MalformedResponse")
    return upload_id


def parse_complete_multipart_upload(body: bytes) -> str:
    """Parse a CompleteMultipartUploadResult body and return the final ETag."""
    root = _parse(body, "CompleteMultipartUploadResult")
    return strip_etag(_text(root, "ETag"))


def parse_copy_object_result(body: bytes) -> tuple[str, datetime | None]:
    """Parse a CopyObjectResult body.

    Returns:
        A tuple of (etag, last_modified).
    """
    root = _parse(body, "CopyObjectResult")
    return strip_etag(_text(root, "ETag")), parse_timestamp(_text(root, "LastModified"))


def parse_delete_result(body: bytes) -> tuple[list[str], list[DeleteFailure]]:
    """Parse a DeleteResult body.

    Returns:
        A tuple of (deleted keys, failures).
    """
    root = _parse(body, "DeleteResult")
    deleted = [_text(elem, "Key", strip=False) for elem in _findall(root, "Deleted")]
    failures = [
        DeleteFailure(
            key=_text(elem, "Key", strip=False),
            code=_text(elem, "Code"),
            message=_text(elem, "Message"),
        )
        for elem in _findall(root, "Error")
    ]
    return deleted, failures


def parse_list_multipart_uploads(body: bytes) -> ListUploadsPage:
    """Parse a ListMultipartUploadsResult body."""
    root = _parse(body, "ListMultipartUploadsResult")
    bucket = _text(root, "Bucket")
    page = ListUploadsPage(
        is_truncated=_text(root, "IsTruncated").lower() == "true",
        next_key_marker=_text(root, "NextKeyMarker") or None,
        next_upload_id_marker=_text(root, "NextUploadIdMarker") or None,
    )
    for elem in _findall(root, "Upload"):
        page.uploads.append(
            MultipartUploadSummary(
                bucket=bucket,
                key=_text(elem, "Key", strip=False),
                upload_id=_text(elem, "UploadId"),
                initiated=parse_timestamp(_text(elem, "Initiated")),
            )
        )
    return page


# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------


def strip_etag(etag: str | None) -> str:
    """Remove surrounding quotes from an ETag."""
    return (etag or "").strip().strip('"')


def quote_etag(etag: str) -> str:
    """Wrap an ETag in double quotes as S3 expects in request bodies."""
    return f'"{strip_etag(etag)}"'


def parse_timestamp(value: str) -> datetime | None:
    """Parse an ISO 8601 timestamp such as ``2009-10-12T17:50:30.000Z``."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _parse(body: bytes, expected_root: str) -> ET.Element:
    """Parse a response document and check its root element."""
    try:
        root = ET.fromstring(body)
    except ET.ParseError as exc:
        raise TransportError(
            f"Malformed {expected_root} response: {exc}", code="MalformedResponse"
        ) from exc
    if _local_name(root.tag) != expected_root:
        raise TransportError(
            f"Expected {expected_root}, got {_local_name(root.tag)}",
            code="MalformedResponse",
        )
    return root


def _local_name(tag: str) -> str:
    """Strip an ``{namespace}`` prefix from an element tag."""
    if tag.startswith("{"):
        return tag[tag.index("}") + 1 :]
    return tag


def _namespace(elem: ET.Element) -> str:
    if elem.tag.startswith("{"):
        return elem.tag[: elem.tag.index("}") + 1]
    return ""


def _find(parent: ET.Element, name: str) -> ET.Element | None:
    """Find a child element, trying the parent's namespace first, then bare."""
    elem = parent.find(f"{_namespace(parent)}{name}")
    if elem is not None:
        return elem
    return parent.find(name)


def _findall(parent: ET.Element, name: str) -> list[ET.Element]:
    ns = _namespace(parent)
    found = parent.findall(f"{ns}{name}")
    if ns:
        found += parent.findall(name)
    return found


def _text(parent: ET.Element, name: str, strip: bool = True) -> str:
    elem = _find(parent, name)
    if elem is None or elem.text is None:
        return ""
    # Object keys may legitimately begin or end with whitespace
    return elem.text.strip() if strip else elem.text
