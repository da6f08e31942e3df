"""Data model types for Stowage.

These dataclasses describe what the facade hands back to callers: buckets,
object metadata, multipart sessions and their parts, and the per-key
failures of a batch delete.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from stowage.errors import IncompleteUploadError, MultipartStateError


@dataclass
class Bucket:
    """A bucket visible to the authenticated principal.

    Attributes:
        name: The bucket name.
        region: The bucket region, if the provider reported one.
        created_at: Creation timestamp, if reported.
    """

    name: str
    region: str = ""
    created_at: datetime | None = None


@dataclass
class ObjectInfo:
    """Metadata for a stored object.

    Attributes:
        bucket: The bucket name.
        key: The object key.
        size: Size in bytes, or None when a HEAD response did not report it.
        etag: Provider ETag, quotes stripped.
        last_modified: Last-modified timestamp.
        content_type: MIME type (only populated by HEAD).
        storage_class: Provider storage class (only populated by listings).
    """

    bucket: str
    key: str
    size: int | None = 0
    etag: str | None = None
    last_modified: datetime | None = None
    content_type: str | None = None
    storage_class: str | None = None


@dataclass(frozen=True)
class CompletedPart:
    """An uploaded part of a multipart upload.

    Attributes:
        part_number: 1-based part number.
        etag: ETag returned by the provider for this part.
        size: Number of bytes in the part.
        checksum: Hex MD5 of the part computed locally.
    """

    part_number: int
    etag: str
    size: int = 0
    checksum: str = ""


@dataclass
class MultipartUploadSummary:
    """An in-progress multipart upload reported by the provider."""

    bucket: str
    key: str
    upload_id: str
    initiated: datetime | None = None


@dataclass(frozen=True)
class DeleteFailure:
    """A key a batch delete could not remove."""

    key: str
    code: str
    message: str = ""


class SessionState(str, Enum):
    """Lifecycle states of a multipart upload session."""

    INITIATED = "initiated"
    PARTS_UPLOADING = "parts_uploading"
    COMPLETED = "completed"
    ABORTED = "aborted"


_TERMINAL = frozenset({SessionState.COMPLETED, SessionState.ABORTED})


@dataclass
class MultipartUploadSession:
    """Client-side view of one multipart upload.

    Parts may be recorded from several worker threads at once.  Once the
    session reaches COMPLETED or ABORTED it never changes state again.

    Attributes:
        bucket: Target bucket.
        key: Target object key.
        upload_id: Provider upload identifier.
        state: Current lifecycle state.
        etag: ETag of the assembled object once completed.
    """

    bucket: str
    key: str
    upload_id: str
    state: SessionState = SessionState.INITIATED
    etag: str | None = None
    _parts: dict[int, CompletedPart] = field(default_factory=dict, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def is_terminal(self) -> bool:
        return self.state in _TERMINAL

    @property
    def parts(self) -> list[CompletedPart]:
        """Recorded parts in ascending part-number order."""
        with self._lock:
            return [self._parts[n] for n in sorted(self._parts)]

    def record_part(self, part: CompletedPart) -> None:
        """Record an uploaded part, moving the session to PARTS_UPLOADING.

        Raises:
            MultipartStateError: If the session is already terminal.
        """
        with self._lock:
            self._ensure_open("record a part")
            self._parts[part.part_number] = part
            self.state = SessionState.PARTS_UPLOADING

    def manifest(self) -> list[CompletedPart]:
        """Return the completion manifest.

        Returns:
            Parts sorted by part number.

        Raises:
            IncompleteUploadError: If no parts were recorded or the part
                numbers are not exactly ``1..n``.
        """
        parts = self.parts
        if not parts:
            raise IncompleteUploadError(
                f"Upload {self.upload_id} has no parts", resource=self.key
            )
        for expected, part in enumerate(parts, start=1):
            if part.part_number != expected:
                raise IncompleteUploadError(
                    f"Upload {self.upload_id} is missing part {expected}",
                    resource=self.key,
                )
        return parts

    def mark_completed(self, etag: str | None) -> None:
        with self._lock:
            self._ensure_open("complete")
            self.state = SessionState.COMPLETED
            self.etag = etag

    def mark_aborted(self) -> None:
        with self._lock:
            self._ensure_open("abort")
            self.state = SessionState.ABORTED

    def _ensure_open(self, action: str) -> None:
        if self.state in _TERMINAL:
            raise MultipartStateError(
                f"Cannot {action}: upload {self.upload_id} is {self.state.value}",
                resource=self.key,
            )
