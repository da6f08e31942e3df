"""AWS Signature Version 4 request signing for Stowage.

Implements the SigV4 header-signing algorithm on the client side: canonical
request, string to sign, signing-key derivation and the ``Authorization``
header.

References:
    - https://docs.aws.amazon.com/AmazonS3/latest/API/sig-v4-authenticating-requests.html
"""

import hashlib
import hmac
import logging
import re
import threading
import urllib.parse
from datetime import datetime, timezone
from typing import Iterable, Mapping

from stowage.credentials import Credentials

logger = logging.getLogger(__name__)

# Constants
ALGORITHM = "AWS4-HMAC-SHA256"
KEY_PREFIX = "AWS4"
SCOPE_TERMINATOR = "aws4_request"
SERVICE_NAME = "s3"
UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"
EMPTY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
AMZ_DATE_FORMAT = "%Y%m%dT%H%M%SZ"

# Regex for the Authorization header
# Example: AWS4-HMAC-SHA256 Credential=AKID/20260222/us-east-1/s3/aws4_request,
#          SignedHeaders=host;x-amz-date, Signature=abcdef...
AUTH_HEADER_RE = re.compile(
    r"AWS4-HMAC-SHA256\s+"
    r"Credential=(?P<credential>[^,]+),\s*"
    r"SignedHeaders=(?P<signed_headers>[^,]+),\s*"
    r"Signature=(?P<signature>[0-9a-f]{64})"
)


class SigV4Signer:
    """Signs outgoing requests with AWS Signature Version 4.

    Signing keys are cached per (access key, date, region, service) so the
    4-step HMAC chain runs once per day per credential.  The signer is safe
    to share between threads.

    Attributes:
        region: Region used in the credential scope.
        service: Service name used in the credential scope.
    """

    def __init__(self, region: str, service: str = SERVICE_NAME) -> None:
        self.region = region
        self.service = service
        self._signing_key_cache: dict[tuple[str, str, str, str], bytes] = {}
        self._lock = threading.Lock()

    def sign(
        self,
        method: str,
        path: str,
        query: Iterable[tuple[str, str]],
        headers: Mapping[str, str],
        payload_hash: str,
        credentials: Credentials,
        now: datetime | None = None,
    ) -> dict[str, str]:
        """Return ``headers`` plus the SigV4 date, hash, token and Authorization.

        Every header passed in is signed, so callers should only pass headers
        that reach the wire unchanged (``host`` must be among them).

        Args:
            method: HTTP method (uppercase).
            path: Decoded request path, e.g. ``/bucket/my key``.
            query: Decoded query parameters as (name, value) pairs.
            headers: Request headers to sign.
            payload_hash: Hex SHA-256 of the body or ``UNSIGNED-PAYLOAD``.
            credentials: Resolved signing credentials.
            now: Signing time (defaults to the current UTC time).

        Returns:
            A new dict of lowercase header names to values.
        """
        now = now or datetime.now(timezone.utc)
        amz_date = now.strftime(AMZ_DATE_FORMAT)
        date_stamp = amz_date[:8]

        signed: dict[str, str] = {name.lower(): value for name, value in headers.items()}
        signed["x-amz-date"] = amz_date
        signed["x-amz-content-sha256"] = payload_hash
        if credentials.session_token:
            signed["x-amz-security-token"] = credentials.session_token

        signed_header_names = sorted(signed)
        canonical_request = build_canonical_request(
            method=method,
            uri=path,
            canonical_query=canonical_query_string(query),
            headers=signed,
            signed_headers=signed_header_names,
            payload_hash=payload_hash,
        )

        scope = f"{date_stamp}/{self.region}/{self.service}/{SCOPE_TERMINATOR}"
        string_to_sign = build_string_to_sign(amz_date, scope, canonical_request)
        signing_key = self._signing_key(credentials, date_stamp)
        signature = compute_signature(signing_key, string_to_sign)

        signed["authorization"] = (
            f"{ALGORITHM} Credential={credentials.access_key}/{scope}, "
            f"SignedHeaders={';'.join(signed_header_names)}, Signature={signature}"
        )
        logger.debug("Signed %s %s (scope=%s)", method, path, scope)
        return signed

    def _signing_key(self, credentials: Credentials, date_stamp: str) -> bytes:
        """Derive (or reuse) the signing key for this credential and day."""
        cache_key = (credentials.access_key, date_stamp, self.region, self.service)
        with self._lock:
            cached = self._signing_key_cache.get(cache_key)
            if cached is not None:
                return cached

        signing_key = derive_signing_key(
            credentials.secret_key, date_stamp, self.region, self.service
        )

        with self._lock:
            # Evict everything once the cache grows; keys rotate daily anyway
            if len(self._signing_key_cache) > 100:
                self._signing_key_cache.clear()
            self._signing_key_cache[cache_key] = signing_key
        return signing_key


# ---------------------------------------------------------------------------
# Module-level utility functions
# ---------------------------------------------------------------------------


def hash_payload(body: bytes) -> str:
    """Return the hex SHA-256 digest used for ``x-amz-content-sha256``."""
    if not body:
        return EMPTY_SHA256
    return hashlib.sha256(body).hexdigest()


def build_canonical_request(
    method: str,
    uri: str,
    canonical_query: str,
    headers: Mapping[str, str],
    signed_headers: list[str],
    payload_hash: str,
) -> str:
    """Build the canonical request string.

    Args:
        method: HTTP method (uppercase).
        uri: The decoded request URI path.
        canonical_query: The already-canonical query string.
        headers: Request headers (names may be mixed case).
        signed_headers: Names of the signed headers.
        payload_hash: SHA-256 hex digest or UNSIGNED-PAYLOAD.

    Returns:
        The canonical request string.
    """
    canonical_uri = uri_encode_path(uri)

    # Canonical headers: lowercase names, trim values, sort by name
    lower_headers: dict[str, str] = {}
    for name, value in headers.items():
        lower_name = name.lower()
        if lower_name in lower_headers:
            lower_headers[lower_name] += "," + trim_header_value(value)
        else:
            lower_headers[lower_name] = trim_header_value(value)

    sorted_signed = sorted(name.lower() for name in signed_headers)
    canonical_headers = "".join(
        f"{name}:{lower_headers.get(name, '')}\n" for name in sorted_signed
    )

    return "\n".join(
        [
            method,
            canonical_uri,
            canonical_query,
            canonical_headers,
            ";".join(sorted_signed),
            payload_hash,
        ]
    )


def build_string_to_sign(timestamp: str, scope: str, canonical_request: str) -> str:
    """Build the string to sign.

    Args:
        timestamp: ISO 8601 basic timestamp (YYYYMMDDTHHMMSSZ).
        scope: Credential scope (YYYYMMDD/region/s3/aws4_request).
        canonical_request: The assembled canonical request string.

    Returns:
        The string to sign.
    """
    canonical_hash = hashlib.sha256(canonical_request.encode("utf-8")).hexdigest()
    return f"{ALGORITHM}\n{timestamp}\n{scope}\n{canonical_hash}"


def compute_signature(signing_key: bytes, string_to_sign: str) -> str:
    """Compute the final HMAC-SHA256 hex signature."""
    return hmac.new(signing_key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()


def derive_signing_key(secret_key: str, date: str, region: str, service: str) -> bytes:
    """Derive the SigV4 signing key via the HMAC-SHA256 chain.

    Args:
        secret_key: The secret access key.
        date: Date string (YYYYMMDD).
        region: AWS region.
        service: AWS service name.

    Returns:
        The 32-byte signing key.
    """
    k_date = hmac.new(
        (KEY_PREFIX + secret_key).encode("utf-8"),
        date.encode("utf-8"),
        hashlib.sha256,
    ).digest()
    k_region = hmac.new(k_date, region.encode("utf-8"), hashlib.sha256).digest()
    k_service = hmac.new(k_region, service.encode("utf-8"), hashlib.sha256).digest()
    k_signing = hmac.new(k_service, SCOPE_TERMINATOR.encode("utf-8"), hashlib.sha256).digest()
    return k_signing


def parse_authorization_header(header: str) -> dict[str, str] | None:
    """Split a SigV4 Authorization header into credential, headers and signature.

    Returns:
        A dict with keys ``credential``, ``signed_headers`` and ``signature``,
        or None if the header is not a SigV4 header.
    """
    match = AUTH_HEADER_RE.match(header)
    if not match:
        return None
    return {
        "credential": match.group("credential"),
        "signed_headers": match.group("signed_headers"),
        "signature": match.group("signature"),
    }


def uri_encode(s: str, encode_slash: bool = True) -> str:
    """S3-compatible URI encoding.

    Characters A-Z, a-z, 0-9, '-', '_', '.', '~' are not encoded.
    All other characters are percent-encoded with uppercase hex.
    Spaces become %20 (not +).

    Args:
        s: The string to encode.
        encode_slash: If True (default), '/' is encoded as %2F.

    Returns:
        The URI-encoded string.
    """
    safe = "-_.~" if encode_slash else "-_.~/"
    return urllib.parse.quote(s, safe=safe)


def uri_encode_path(path: str) -> str:
    """URI-encode a path, preserving forward slashes.

    Args:
        path: The decoded URI path.

    Returns:
        The URI-encoded path, always starting with '/'.
    """
    if not path:
        return "/"
    encoded = "/".join(uri_encode(seg, encode_slash=False) for seg in path.split("/"))
    if not encoded.startswith("/"):
        encoded = "/" + encoded
    return encoded


def canonical_query_string(params: Iterable[tuple[str, str]]) -> str:
    """Encode and sort decoded query parameters into canonical form.

    Parameters are sorted by name (byte-order), then by value.  Parameters
    with no value use an empty value (e.g. ``uploads=``).
    """
    encoded = sorted(
        (uri_encode(name, encode_slash=True), uri_encode(value, encode_slash=True))
        for name, value in params
    )
    return "&".join(f"{name}={value}" for name, value in encoded)


def canonicalize_raw_query(query_string: str) -> str:
    """Build the canonical query string from a raw, already-encoded query string."""
    if not query_string:
        return ""

    params: list[tuple[str, str]] = []
    for pair in query_string.split("&"):
        if not pair:
            continue
        if "=" in pair:
            name, value = pair.split("=", 1)
        else:
            name, value = pair, ""
        params.append((urllib.parse.unquote_plus(name), urllib.parse.unquote_plus(value)))
    return canonical_query_string(params)


def trim_header_value(value: str) -> str:
    """Strip a header value and collapse runs of spaces to one."""
    return re.sub(r" +", " ", value.strip())
