"""The object-store facade: bucket and object operations over a Transport.

Every public method either returns its result or raises a ``StowageError``
subclass; nothing is retried here and nothing is silently partial.  Logging
of operation outcomes is left to the caller (see ``stowage.observability``).
"""

from __future__ import annotations

import base64
import hashlib
import logging
import urllib.parse
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Iterable, Iterator, Mapping

from stowage.errors import (
    BucketAlreadyOwnedError,
    DeleteObjectsError,
    NotFoundError,
    ObjectNotFoundError,
    StowageError,
    TransportError,
)
from stowage.models import (
    Bucket,
    CompletedPart,
    MultipartUploadSession,
    MultipartUploadSummary,
    ObjectInfo,
)
from stowage.multipart import (
    ByteSource,
    download_ranges,
    iter_chunks,
    plan_ranges,
    read_all,
    upload_parts,
)
from stowage.transport import Transport, TransportResponse, raise_for_response
from stowage.validation import (
    MIN_PART_SIZE,
    require_bucket,
    validate_bucket_name,
    validate_object_key,
    validate_part_size,
    validate_region,
)
from stowage.xml_utils import (
    parse_complete_multipart_upload,
    parse_copy_object_result,
    parse_delete_result,
    parse_initiate_multipart_upload,
    parse_list_buckets,
    parse_list_multipart_uploads,
    parse_list_objects_v2,
    render_complete_multipart_upload,
    render_create_bucket_configuration,
    render_delete_objects,
    strip_etag,
)

logger = logging.getLogger(__name__)

DEFAULT_PART_SIZE = 10 * 1024 * 1024
DEFAULT_MAX_WORKERS = 8
DELETE_BATCH_SIZE = 1000
MAX_LIST_PAGE = 1000


class ObjectStoreFacade:
    """A handle bound to one endpoint, region and credential set.

    The facade holds no mutable state after construction and may be shared
    between threads.  Multipart calls create their own worker pool per call.

    Attributes:
        transport: The signed-request transport.
        region: Default region for new buckets.
        part_size_bytes: Default multipart part size.
        max_workers: Concurrent part transfers per multipart call.
        min_part_size_bytes: Smallest part size accepted.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        region: str,
        part_size_bytes: int = DEFAULT_PART_SIZE,
        max_workers: int = DEFAULT_MAX_WORKERS,
        min_part_size_bytes: int = MIN_PART_SIZE,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.transport = transport
        self.region = region
        self.min_part_size_bytes = min_part_size_bytes
        self.part_size_bytes = validate_part_size(part_size_bytes, min_part_size_bytes)
        self.max_workers = max_workers

    def __enter__(self) -> "ObjectStoreFacade":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Release the transport's pooled connections."""
        self.transport.close()

    # -- Buckets ---------------------------------------------------------------

    def list_buckets(self) -> list[Bucket]:
        """Return every bucket owned by the authenticated principal."""
        buckets: list[Bucket] = []
        token: str | None = None
        while True:
            query = {"continuation-token": token} if token else None
            response = self._request("GET", "/", query=query)
            page = parse_list_buckets(response.body)
            buckets.extend(page.buckets)
            if not page.continuation_token or page.continuation_token == token:
                return buckets
            token = page.continuation_token

    def bucket_exists(self, name: str) -> bool:
        """Probe a bucket with HEAD.

        Returns:
            True if the bucket exists and is reachable, False if the provider
            answers 404.

        Raises:
            AccessDeniedError: The bucket exists but the principal may not use it.
            StowageError: Any other failure.
        """
        require_bucket(name)
        path = _bucket_path(name)
        response = self.transport.send("HEAD", path)
        if response.status == 404:
            return False
        raise_for_response(response, resource=path)
        return True

    def create_bucket(self, name: str, region: str | None = None) -> None:
        """Create a bucket.

        Re-creating a bucket the caller already owns succeeds silently.

        Raises:
            InvalidBucketNameError: The name violates the naming rules.
            InvalidRegionError: The region is malformed or refused.
            NameConflictError: Another principal owns the name.
        """
        region = region or self.region
        validate_bucket_name(name)
        validate_region(region)

        body = render_create_bucket_configuration(region).encode("utf-8")
        headers = {"content-type": "application/xml"} if body else None
        try:
            self._request("PUT", _bucket_path(name), headers=headers, body=body)
        except BucketAlreadyOwnedError:
            logger.debug("Bucket %s already exists and is owned by the caller", name)

    def delete_bucket(self, name: str) -> None:
        """Delete an empty bucket.

        Raises:
            BucketNotEmptyError: The bucket still holds objects.
            BucketNotFoundError: The bucket does not exist.
        """
        require_bucket(name)
        self._request("DELETE", _bucket_path(name))

    # -- Single-shot objects ---------------------------------------------------

    def upload_object(
        self,
        bucket: str,
        key: str,
        source: ByteSource,
        content_type: str | None = None,
    ) -> str:
        """Upload a payload in a single request.

        Args:
            bucket: Target bucket.
            key: Target key.
            source: Bytes or a binary file object.
            content_type: Optional MIME type.

        Returns:
            The ETag of the stored object.
        """
        self._check_target(bucket, key)
        data = read_all(source)
        headers = {"content-md5": _content_md5(data)}
        if content_type:
            headers["content-type"] = content_type
        response = self._request("PUT", _object_path(bucket, key), headers=headers, body=data)
        return strip_etag(response.headers.get("etag"))

    def download_object(self, bucket: str, key: str) -> bytes:
        """Return the full content of an object.

        Raises:
            ObjectNotFoundError: The key does not exist.
        """
        self._check_target(bucket, key)
        return self._request("GET", _object_path(bucket, key)).body

    def head_object(self, bucket: str, key: str) -> ObjectInfo:
        """Return object metadata without the body.

        Raises:
            ObjectNotFoundError: The bucket or key does not exist.
        """
        self._check_target(bucket, key)
        path = _object_path(bucket, key)
        try:
            response = self._request("HEAD", path)
        except NotFoundError as exc:
            if isinstance(exc, ObjectNotFoundError):
                raise
            # HEAD carries no error body, so only the status is known
            raise ObjectNotFoundError(
                f"{bucket}/{key} not found", http_status=404, resource=path
            ) from exc
        return _object_info_from_headers(bucket, key, response.headers)

    def copy_object(
        self, source_bucket: str, source_key: str, dest_bucket: str, dest_key: str
    ) -> str:
        """Copy an object server-side.

        Returns:
            The ETag of the new object.

        Raises:
            ObjectNotFoundError: The source key does not exist.
        """
        self._check_target(source_bucket, source_key)
        self._check_target(dest_bucket, dest_key)
        copy_source = urllib.parse.quote(f"/{source_bucket}/{source_key}", safe="/~")
        response = self._request(
            "PUT",
            _object_path(dest_bucket, dest_key),
            headers={"x-amz-copy-source": copy_source},
            body_may_fail=True,
        )
        etag, _ = parse_copy_object_result(response.body)
        return etag

    def copy_to_folder(self, bucket: str, key: str, folder: str) -> str:
        """Copy ``key`` to ``folder/key`` within the same bucket."""
        return self.copy_object(bucket, key, bucket, f"{folder.rstrip('/')}/{key}")

    def upload_file(self, bucket: str, key: str, path: str | Path) -> str:
        """Upload a local file in a single request."""
        with open(path, "rb") as fh:
            return self.upload_object(bucket, key, fh)

    def download_file(self, bucket: str, key: str, path: str | Path) -> int:
        """Download an object into a local file.

        Returns:
            Number of bytes written.
        """
        data = self.download_object(bucket, key)
        with open(path, "wb") as fh:
            fh.write(data)
        return len(data)

    # -- Listing and deletion --------------------------------------------------

    def iter_objects(
        self, bucket: str, prefix: str | None = None, page_size: int = MAX_LIST_PAGE
    ) -> Iterator[ObjectInfo]:
        """Lazily list objects, following continuation tokens.

        Each call starts a fresh listing.  Keys arrive in ascending order, so
        a key that is not greater than the previous one (a page overlap) is
        skipped.

        Args:
            bucket: Bucket to list.
            prefix: Only list keys starting with this prefix.
            page_size: Keys requested per page (1-1000).
        """
        require_bucket(bucket)
        page_size = max(1, min(page_size, MAX_LIST_PAGE))
        path = _bucket_path(bucket)
        token: str | None = None
        last_key: str | None = None

        while True:
            query = {"list-type": "2", "encoding-type": "url", "max-keys": str(page_size)}
            if prefix:
                query["prefix"] = prefix
            if token:
                query["continuation-token"] = token

            page = parse_list_objects_v2(self._request("GET", path, query=query).body, bucket)
            for info in page.objects:
                if last_key is not None and info.key <= last_key:
                    continue
                last_key = info.key
                yield info

            if not page.is_truncated:
                return
            if not page.next_continuation_token or page.next_continuation_token == token:
                raise TransportError(
                    "Truncated listing without a new continuation token",
                    code="MalformedResponse",
                    resource=path,
                )
            token = page.next_continuation_token

    def list_objects(self, bucket: str, prefix: str | None = None) -> list[ObjectInfo]:
        """Return every object in ``bucket`` (optionally under ``prefix``)."""
        return list(self.iter_objects(bucket, prefix=prefix))

    def delete_objects(self, bucket: str, keys: Iterable[str]) -> list[str]:
        """Delete a set of keys in batches of 1000.

        Deleting a key that does not exist counts as success.

        Returns:
            The sorted, de-duplicated keys that were deleted.

        Raises:
            DeleteObjectsError: The provider refused one or more keys.
        """
        require_bucket(bucket)
        unique = sorted(set(keys))
        for key in unique:
            validate_object_key(key)

        path = _bucket_path(bucket)
        failures = []
        for start in range(0, len(unique), DELETE_BATCH_SIZE):
            batch = unique[start : start + DELETE_BATCH_SIZE]
            body = render_delete_objects(batch, quiet=True).encode("utf-8")
            response = self._request(
                "POST",
                path,
                query={"delete": ""},
                headers={"content-md5": _content_md5(body), "content-type": "application/xml"},
                body=body,
            )
            _, batch_failures = parse_delete_result(response.body)
            failures.extend(batch_failures)

        if failures:
            raise DeleteObjectsError(failures, bucket=bucket)
        return unique

    # -- Multipart upload ------------------------------------------------------

    def upload_large_object(
        self,
        bucket: str,
        key: str,
        source: ByteSource,
        part_size_bytes: int | None = None,
        content_type: str | None = None,
    ) -> MultipartUploadSession:
        """Upload ``source`` as a multipart upload with concurrent parts.

        The session is aborted before any error is re-raised, so a failed
        call never leaves an object (or billable parts) behind.

        Args:
            bucket: Target bucket.
            key: Target key.
            source: Bytes or a binary file object, read sequentially.
            part_size_bytes: Part size (defaults to the facade's).
            content_type: Optional MIME type for the final object.

        Returns:
            The COMPLETED session with its ordered part manifest.

        Raises:
            StowageError: The first failure.  Once a session was opened the
                error carries it as ``session``, marked ABORTED.
        """
        self._check_target(bucket, key)
        part_size = validate_part_size(
            part_size_bytes or self.part_size_bytes, self.min_part_size_bytes
        )

        chunks = iter_chunks(source, part_size)
        first = next(chunks, None)
        if first is None:
            # Multipart uploads need at least one part; store empty payloads directly
            etag = self.upload_object(bucket, key, b"", content_type=content_type)
            session = MultipartUploadSession(bucket=bucket, key=key, upload_id="")
            session.mark_completed(etag)
            return session

        session = self._create_multipart_upload(bucket, key, content_type)
        try:
            upload_parts(
                _prepend(first, chunks),
                lambda number, data: self._upload_part(session, number, data),
                self.max_workers,
            )
            self._complete_multipart_upload(session)
        except BaseException as exc:
            self._abort_after_failure(session, exc)
            if isinstance(exc, StowageError):
                exc.session = session
            raise
        return session

    def list_multipart_uploads(
        self, bucket: str, prefix: str | None = None
    ) -> list[MultipartUploadSummary]:
        """Return in-progress multipart uploads, e.g. to find orphans."""
        require_bucket(bucket)
        path = _bucket_path(bucket)
        uploads: list[MultipartUploadSummary] = []
        key_marker: str | None = None
        upload_id_marker: str | None = None

        while True:
            query = {"uploads": ""}
            if prefix:
                query["prefix"] = prefix
            if key_marker:
                query["key-marker"] = key_marker
            if upload_id_marker:
                query["upload-id-marker"] = upload_id_marker

            page = parse_list_multipart_uploads(self._request("GET", path, query=query).body)
            for upload in page.uploads:
                upload.bucket = upload.bucket or bucket
                uploads.append(upload)

            if not page.is_truncated:
                return uploads
            if (page.next_key_marker, page.next_upload_id_marker) == (key_marker, upload_id_marker):
                raise TransportError(
                    "Truncated upload listing without new markers",
                    code="MalformedResponse",
                    resource=path,
                )
            key_marker = page.next_key_marker
            upload_id_marker = page.next_upload_id_marker

    def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None:
        """Abort an in-progress multipart upload and release its parts."""
        self._check_target(bucket, key)
        self._request("DELETE", _object_path(bucket, key), query={"uploadId": upload_id})

    def _create_multipart_upload(
        self, bucket: str, key: str, content_type: str | None
    ) -> MultipartUploadSession:
        headers = {"content-type": content_type} if content_type else None
        response = self._request(
            "POST", _object_path(bucket, key), query={"uploads": ""}, headers=headers
        )
        upload_id = parse_initiate_multipart_upload(response.body)
        logger.debug("Initiated multipart upload %s for %s/%s", upload_id, bucket, key)
        return MultipartUploadSession(bucket=bucket, key=key, upload_id=upload_id)

    def _upload_part(
        self, session: MultipartUploadSession, part_number: int, data: bytes
    ) -> CompletedPart:
        digest = hashlib.md5(data)
        response = self._request(
            "PUT",
            _object_path(session.bucket, session.key),
            query={"partNumber": str(part_number), "uploadId": session.upload_id},
            headers={"content-md5": base64.b64encode(digest.digest()).decode("ascii")},
            body=data,
        )
        etag = strip_etag(response.headers.get("etag"))
        if not etag:
            raise TransportError(
                f"Part {part_number} response has no ETag",
                code="MalformedResponse",
                resource=session.key,
            )
        part = CompletedPart(
            part_number=part_number, etag=etag, size=len(data), checksum=digest.hexdigest()
        )
        session.record_part(part)
        return part

    def _complete_multipart_upload(self, session: MultipartUploadSession) -> None:
        body = render_complete_multipart_upload(session.manifest()).encode("utf-8")
        response = self._request(
            "POST",
            _object_path(session.bucket, session.key),
            query={"uploadId": session.upload_id},
            headers={"content-type": "application/xml"},
            body=body,
            body_may_fail=True,
        )
        session.mark_completed(parse_complete_multipart_upload(response.body))

    def _abort_after_failure(self, session: MultipartUploadSession, cause: BaseException) -> None:
        """Best-effort abort; never masks ``cause``."""
        if session.is_terminal:
            return
        try:
            self.abort_multipart_upload(session.bucket, session.key, session.upload_id)
        except StowageError as exc:
            logger.warning(
                "Couldn't abort multipart upload %s for %s/%s after %s: %s",
                session.upload_id,
                session.bucket,
                session.key,
                type(cause).__name__,
                exc,
                extra={"upload_id": session.upload_id},
            )
        session.mark_aborted()

    # -- Ranged download -------------------------------------------------------

    def download_large_object(
        self, bucket: str, key: str, part_size_bytes: int | None = None
    ) -> bytes:
        """Download an object with concurrent ranged GETs.

        Every range is pinned to the ETag seen by the initial HEAD, so an
        object replaced mid-download fails instead of mixing versions.

        Raises:
            ObjectNotFoundError: The key does not exist.
            TransportError: The size is unknown, a range came back short, or
                the object changed.
        """
        part_size = validate_part_size(part_size_bytes or self.part_size_bytes, 1)
        info = self.head_object(bucket, key)
        if info.size is None:
            raise TransportError(
                "HEAD response carried no usable Content-Length",
                code="MalformedResponse",
                resource=_object_path(bucket, key),
            )
        if info.size == 0:
            return b""

        path = _object_path(bucket, key)
        pin = {"if-match": f'"{info.etag}"'} if info.etag else {}

        def fetch_range(start: int, end: int) -> bytes:
            headers = {"range": f"bytes={start}-{end}", **pin}
            response = self._request("GET", path, headers=headers)
            if response.status == 200:
                # Range ignored by the server: full body returned
                return response.body[start : end + 1]
            return response.body

        ranges = plan_ranges(info.size, part_size)
        return bytes(download_ranges(info.size, ranges, fetch_range, self.max_workers))

    # -- Internals -------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        query: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        body: bytes = b"",
        body_may_fail: bool = False,
    ) -> TransportResponse:
        response = self.transport.send(method, path, query=query, headers=headers, body=body)
        raise_for_response(response, resource=path, body_may_fail=body_may_fail)
        return response

    @staticmethod
    def _check_target(bucket: str, key: str) -> None:
        require_bucket(bucket)
        validate_object_key(key)


def _bucket_path(bucket: str) -> str:
    return f"/{bucket}"


def _object_path(bucket: str, key: str) -> str:
    return f"/{bucket}/{key}"


def _content_md5(data: bytes) -> str:
    return base64.b64encode(hashlib.md5(data).digest()).decode("ascii")


def _prepend(first: bytes, rest: Iterator[bytes]) -> Iterator[bytes]:
    yield first
    yield from rest


def _object_info_from_headers(bucket: str, key: str, headers: Mapping[str, str]) -> ObjectInfo:
    last_modified = None
    raw_date = headers.get("last-modified")
    if raw_date:
        try:
            last_modified = parsedate_to_datetime(raw_date)
        except (TypeError, ValueError):
            last_modified = None
    try:
        size = int(headers.get("content-length", ""))
    except ValueError:
        size = None
    return ObjectInfo(
        bucket=bucket,
        key=key,
        size=size,
        etag=strip_etag(headers.get("etag")) or None,
        last_modified=last_modified,
        content_type=headers.get("content-type"),
    )
