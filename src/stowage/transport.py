"""Signed HTTP transport for Stowage.

``HttpTransport`` turns a (method, path, query, headers, body) request into a
SigV4-signed ``httpx`` request against a path-style S3 endpoint.  HTTP error
statuses come back as ordinary responses; :func:`raise_for_response` is the
boundary where they are classified into the ``stowage.errors`` taxonomy.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Protocol, Union

import httpx

from stowage.credentials import CredentialProvider
from stowage.errors import TransportError, classify_error
from stowage.signing import SigV4Signer, canonical_query_string, hash_payload, uri_encode_path
from stowage.xml_utils import parse_error

logger = logging.getLogger(__name__)

QueryParams = Union[Mapping[str, str], Iterable[tuple[str, str]], None]

_DOT_SEGMENTS = {".": "%2E", "..": "%2E%2E"}


@dataclass
class TransportResponse:
    """A raw response from the storage service.

    Attributes:
        status: HTTP status code.
        headers: Response headers (case-insensitive mapping).
        body: Full response body.
    """

    status: int
    headers: Mapping[str, str]
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class Transport(Protocol):
    """Performs signed requests against the storage service's REST API."""

    def send(
        self,
        method: str,
        path: str,
        *,
        query: QueryParams = None,
        headers: Mapping[str, str] | None = None,
        body: bytes = b"",
    ) -> TransportResponse:
        """Send one request and return the raw response.

        Raises:
            TransportError: If no response could be obtained.
            AuthError: If credentials cannot be resolved.
        """
        ...

    def close(self) -> None:
        """Release pooled connections."""
        ...


class HttpTransport:
    """SigV4-signing transport built on a shared ``httpx.Client``.

    The client's connection pool is shared by every caller, including the
    worker threads of multipart transfers.

    Attributes:
        endpoint_url: Base URL of the service, e.g. ``https://s3.sa-east-1.amazonaws.com``.
        region: Region used for signing.
    """

    def __init__(
        self,
        endpoint_url: str,
        region: str,
        credentials: CredentialProvider,
        *,
        client: httpx.Client | None = None,
        timeout: float = 60.0,
        max_connections: int = 16,
        verify: bool = True,
    ) -> None:
        """Initialize the transport.

        Args:
            endpoint_url: Service base URL (scheme, host, optional port/path).
            region: Signing region.
            credentials: Provider resolved once per request.
            client: Pre-built HTTP client (tests pass one in); when omitted a
                pooled client is created and owned by the transport.
            timeout: Per-request timeout in seconds.
            max_connections: Connection pool size.
            verify: Verify TLS certificates.
        """
        try:
            url = httpx.URL(endpoint_url)
        except httpx.InvalidURL as exc:
            raise ValueError(f"Invalid endpoint URL: {endpoint_url!r}") from exc
        if not url.scheme or not url.host:
            raise ValueError(f"Invalid endpoint URL: {endpoint_url!r}")

        self.endpoint_url = endpoint_url.rstrip("/")
        self.region = region
        self._credentials = credentials
        self._signer = SigV4Signer(region=region)
        self._host = url.host if url.port is None else f"{url.host}:{url.port}"
        self._origin = f"{url.scheme}://{self._host}"
        self._base_path = url.path.rstrip("/")

        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=timeout,
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_connections,
            ),
            verify=verify,
            follow_redirects=False,
        )

    def send(
        self,
        method: str,
        path: str,
        *,
        query: QueryParams = None,
        headers: Mapping[str, str] | None = None,
        body: bytes = b"",
    ) -> TransportResponse:
        """Sign and send a request.

        Args:
            method: HTTP method.
            path: Decoded path relative to the endpoint, e.g. ``/bucket/key``.
            query: Decoded query parameters.
            headers: Extra headers; all of them are signed.
            body: Request body.

        Returns:
            The raw response, whatever its status.

        Raises:
            TransportError: On connection, timeout or protocol failures.
            AuthError: If the credential provider cannot supply credentials.
        """
        body = body or b""
        query_items = _normalize_query(query)
        full_path = f"{self._base_path}{path}"

        request_headers = {"host": self._host}
        for name, value in (headers or {}).items():
            request_headers[name.lower()] = value

        signed = self._signer.sign(
            method=method,
            path=full_path,
            query=query_items,
            headers=request_headers,
            payload_hash=hash_payload(body),
            credentials=self._credentials.resolve(),
        )

        url = f"{self._origin}{wire_path(full_path)}"
        query_string = canonical_query_string(query_items)
        if query_string:
            url = f"{url}?{query_string}"

        try:
            response = self._client.request(method, url, headers=signed, content=body)
        except httpx.HTTPError as exc:
            raise TransportError(
                f"{method} {path} failed: {exc}", code=type(exc).__name__, resource=path
            ) from exc

        logger.debug("%s %s -> %d", method, path, response.status_code)
        return TransportResponse(
            status=response.status_code,
            headers=response.headers,
            body=response.content,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


def wire_path(path: str) -> str:
    """Encode ``path`` for the request line.

    Identical to the signed canonical path except that ``.`` and ``..``
    segments are percent-encoded.  httpx removes literal dot segments from
    URLs, which would send the request to a different key than the one
    signed; the service decodes ``%2E`` back to the same opaque key.
    """
    segments = uri_encode_path(path).split("/")
    return "/".join(_DOT_SEGMENTS.get(segment, segment) for segment in segments)


def raise_for_response(
    response: TransportResponse, resource: str = "", body_may_fail: bool = False
) -> None:
    """Raise the classified ``StowageError`` for a failed response.

    Args:
        response: The response to inspect.
        resource: Request path for diagnostics.
        body_may_fail: Also inspect successful bodies for an ``<Error>``
            document (CopyObject and CompleteMultipartUpload can fail after
            the 200 status line has been sent).

    Raises:
        StowageError: The classified error, if the response is a failure.
    """
    if response.ok and not body_may_fail:
        return

    details = parse_error(response.body)
    if response.ok and details is None:
        return

    details = details or {}
    message = details.get("message", "")
    bucket_region = response.headers.get("x-amz-bucket-region")
    if 300 <= response.status < 400 and bucket_region:
        message = f"{message or 'Redirected'} (bucket is in region {bucket_region})"

    raise classify_error(
        response.status,
        code=details.get("code", ""),
        message=message,
        resource=details.get("resource") or resource,
        request_id=details.get("request_id") or response.headers.get("x-amz-request-id", ""),
    )


def _normalize_query(query: QueryParams) -> list[tuple[str, str]]:
    if query is None:
        return []
    items = query.items() if isinstance(query, Mapping) else query
    return [(str(name), "" if value is None else str(value)) for name, value in items]
