"""Stowage: a thin, typed facade over S3-compatible object storage."""

from typing import TYPE_CHECKING

import httpx

from stowage.credentials import (
    CredentialProvider,
    Credentials,
    EnvironmentCredentialProvider,
    RefreshingCredentialProvider,
    StaticCredentialProvider,
    create_credential_provider,
)
from stowage.errors import (
    AccessDeniedError,
    AuthError,
    BucketNotEmptyError,
    BucketNotFoundError,
    DeleteObjectsError,
    IncompleteUploadError,
    InvalidBucketNameError,
    InvalidRegionError,
    MultipartStateError,
    NameConflictError,
    NotFoundError,
    ObjectNotFoundError,
    StowageError,
    TransportError,
    UploadNotFoundError,
    ValidationError,
)
from stowage.facade import ObjectStoreFacade
from stowage.models import (
    Bucket,
    CompletedPart,
    MultipartUploadSession,
    MultipartUploadSummary,
    ObjectInfo,
    SessionState,
)
from stowage.transport import HttpTransport

if TYPE_CHECKING:
    from stowage.config import StowageConfig

__all__ = [
    "AccessDeniedError",
    "AuthError",
    "Bucket",
    "BucketNotEmptyError",
    "BucketNotFoundError",
    "CompletedPart",
    "create_credential_provider",
    "create_facade",
    "CredentialProvider",
    "Credentials",
    "DeleteObjectsError",
    "EnvironmentCredentialProvider",
    "HttpTransport",
    "IncompleteUploadError",
    "InvalidBucketNameError",
    "InvalidRegionError",
    "MultipartStateError",
    "MultipartUploadSession",
    "MultipartUploadSummary",
    "NameConflictError",
    "NotFoundError",
    "ObjectInfo",
    "ObjectNotFoundError",
    "ObjectStoreFacade",
    "RefreshingCredentialProvider",
    "SessionState",
    "StaticCredentialProvider",
    "StowageError",
    "TransportError",
    "UploadNotFoundError",
    "ValidationError",
]

__version__ = "0.1.0"


def create_facade(
    config: "StowageConfig",
    credentials: CredentialProvider | None = None,
    client: httpx.Client | None = None,
) -> ObjectStoreFacade:
    """Create a facade wired to the configured endpoint.

    Args:
        config: The loaded configuration.
        credentials: Provider to use instead of the configured source.
        client: Pre-built HTTP client, shared with the caller.

    Returns:
        A ready-to-use ObjectStoreFacade.

    Raises:
        ValueError: If the endpoint URL or credentials source is invalid.
    """
    transport = HttpTransport(
        endpoint_url=config.endpoint.url,
        region=config.endpoint.region,
        credentials=credentials or create_credential_provider(config.credentials),
        client=client,
        timeout=config.http.timeout_seconds,
        max_connections=config.http.max_connections,
        verify=config.http.verify_tls,
    )
    return ObjectStoreFacade(
        transport,
        region=config.endpoint.region,
        part_size_bytes=config.transfer.part_size_bytes,
        max_workers=config.transfer.max_workers,
        min_part_size_bytes=config.transfer.min_part_size_bytes,
    )
