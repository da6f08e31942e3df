"""Concurrent part transfer engine for multipart uploads and ranged downloads.

Both directions run on a ``ThreadPoolExecutor`` whose size is fixed by the
caller and independent of the payload size.  Ordering never depends on
completion order: uploaded parts are sorted by part number and downloaded
ranges are written straight to their byte offset.
"""

from __future__ import annotations

import logging
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import BinaryIO, Callable, Iterable, Iterator, Union

from stowage.errors import TransportError, ValidationError
from stowage.models import CompletedPart
from stowage.validation import MAX_PARTS

logger = logging.getLogger(__name__)

ByteSource = Union[bytes, bytearray, memoryview, BinaryIO]


def read_all(source: ByteSource) -> bytes:
    """Return the whole payload of ``source`` as bytes."""
    if isinstance(source, (bytes, bytearray, memoryview)):
        return bytes(source)
    return source.read()


def iter_chunks(source: ByteSource, size: int) -> Iterator[bytes]:
    """Yield sequential chunks of ``size`` bytes (the last may be shorter).

    Streams are read lazily, one chunk per ``next()``; nothing is yielded
    for an empty source.
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        view = memoryview(source)
        for offset in range(0, len(view), size):
            yield bytes(view[offset : offset + size])
        return

    while True:
        chunk = _read_exactly(source, size)
        if not chunk:
            return
        yield chunk
        if len(chunk) < size:
            return


def _read_exactly(stream: BinaryIO, size: int) -> bytes:
    """Read up to ``size`` bytes, looping over short reads from pipes and sockets."""
    buf = bytearray()
    while len(buf) < size:
        data = stream.read(size - len(buf))
        if not data:
            break
        buf += data
    return bytes(buf)


def upload_parts(
    chunks: Iterable[bytes],
    upload_part: Callable[[int, bytes], CompletedPart],
    max_workers: int,
) -> list[CompletedPart]:
    """Upload ``chunks`` as numbered parts with at most ``max_workers`` in flight.

    The source is only read when a worker slot frees up, so memory stays
    bounded by ``max_workers`` parts.  On the first failure no further
    chunks are read, queued parts are cancelled, in-flight parts are allowed
    to finish, and the failure is re-raised.

    Args:
        chunks: Part payloads in order; numbered from 1.
        upload_part: Uploads one part and returns its record.
        max_workers: Worker pool size.

    Returns:
        Completed parts sorted by ascending part number.

    Raises:
        ValidationError: If the source needs more than 10000 parts.
        StowageError: The first part failure.
    """
    completed: list[CompletedPart] = []
    pending: set[Future[CompletedPart]] = set()

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="stowage-upload") as pool:
        try:
            for part_number, chunk in enumerate(chunks, start=1):
                if part_number > MAX_PARTS:
                    raise ValidationError(
                        f"Source needs more than {MAX_PARTS} parts; increase the part size",
                        code="InvalidArgument",
                    )
                if len(pending) >= max_workers:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    completed.extend(f.result() for f in done)
                pending.add(pool.submit(upload_part, part_number, chunk))

            while pending:
                done, pending = wait(pending, return_when=FIRST_COMPLETED)
                completed.extend(f.result() for f in done)
        except BaseException:
            for future in pending:
                future.cancel()
            raise

    return sorted(completed, key=lambda part: part.part_number)


def plan_ranges(size: int, part_size: int) -> list[tuple[int, int]]:
    """Split ``[0, size)`` into inclusive byte ranges of at most ``part_size``."""
    return [
        (start, min(start + part_size, size) - 1) for start in range(0, size, part_size)
    ]


def download_ranges(
    size: int,
    ranges: list[tuple[int, int]],
    fetch_range: Callable[[int, int], bytes],
    max_workers: int,
) -> bytearray:
    """Fetch byte ranges concurrently and assemble them by offset.

    Args:
        size: Total object size; the buffer is preallocated to it.
        ranges: Inclusive (start, end) ranges covering the object.
        fetch_range: Returns the bytes of one range.
        max_workers: Worker pool size.

    Returns:
        The assembled object.

    Raises:
        TransportError: If a range returns the wrong number of bytes.
        StowageError: The first range failure.
    """
    buffer = bytearray(size)

    def fetch_into(start: int, end: int) -> None:
        data = fetch_range(start, end)
        expected = end - start + 1
        if len(data) != expected:
            raise TransportError(
                f"Range {start}-{end} returned {len(data)} bytes, expected {expected}",
                code="IncompleteBody",
            )
        buffer[start : end + 1] = data

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="stowage-download") as pool:
        futures = [pool.submit(fetch_into, start, end) for start, end in ranges]
        try:
            for future in futures:
                future.result()
        except BaseException:
            for future in futures:
                future.cancel()
            raise

    logger.debug("Assembled %d bytes from %d ranges", size, len(ranges))
    return buffer
