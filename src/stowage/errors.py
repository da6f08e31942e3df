"""Typed error taxonomy for Stowage.

Every failure the facade surfaces is a ``StowageError`` subclass.  Provider
error responses are mapped onto this taxonomy by :func:`classify_error`,
which is the only place that knows about S3 error codes.
"""

from __future__ import annotations

from typing import Any


class StowageError(Exception):
    """An object-storage error with code, message, and HTTP status.

    Attributes:
        code: The provider error code (e.g. "NoSuchBucket"), or a Stowage
            code for client-side failures.
        message: Human-readable error description.
        http_status: The HTTP status of the failed response (0 when no
            response was received).
        resource: The resource the request targeted, if known.
        request_id: The provider request identifier, if known.
        session: The aborted multipart session, set only on errors raised
            by a failed multipart upload.
    """

    default_code = "StowageError"
    default_status = 0
    session: Any = None

    def __init__(
        self,
        message: str = "",
        *,
        code: str | None = None,
        http_status: int | None = None,
        resource: str = "",
        request_id: str = "",
    ) -> None:
        """Initialize the error.

        Args:
            message: Error description.
            code: Error code (defaults to the class default).
            http_status: HTTP status code (defaults to the class default).
            resource: The request path or resource name.
            request_id: Provider request id for support lookups.
        """
        self.code = code or self.default_code
        self.message = message or self.code
        self.http_status = self.default_status if http_status is None else http_status
        self.resource = resource
        self.request_id = request_id
        super().__init__(self.message)

    def __str__(self) -> str:
        detail = f"{self.code}: {self.message}"
        if self.http_status:
            detail = f"{detail} (HTTP {self.http_status})"
        if self.resource:
            detail = f"{detail} [{self.resource}]"
        return detail


# -- Authentication -----------------------------------------------------------


class AuthError(StowageError):
    """Credentials are missing, invalid, expired, or the signature was rejected."""

    default_code = "AuthError"
    default_status = 403


class AccessDeniedError(AuthError):
    """The principal is authenticated but not allowed to touch the resource."""

    default_code = "AccessDenied"
    default_status = 403


# -- Not found ----------------------------------------------------------------


class NotFoundError(StowageError):
    """The bucket, object, or upload does not exist."""

    default_code = "NotFound"
    default_status = 404


class BucketNotFoundError(NotFoundError):
    """The specified bucket does not exist."""

    default_code = "NoSuchBucket"


class ObjectNotFoundError(NotFoundError):
    """The specified key does not exist."""

    default_code = "NoSuchKey"


class UploadNotFoundError(NotFoundError):
    """The specified multipart upload does not exist."""

    default_code = "NoSuchUpload"


# -- Conflicts ----------------------------------------------------------------


class NameConflictError(StowageError):
    """The bucket name is owned by another principal."""

    default_code = "BucketAlreadyExists"
    default_status = 409


class BucketAlreadyOwnedError(NameConflictError):
    """The bucket already exists and is owned by the caller."""

    default_code = "BucketAlreadyOwnedByYou"


class BucketNotEmptyError(StowageError):
    """The bucket still holds objects and cannot be deleted."""

    default_code = "BucketNotEmpty"
    default_status = 409


# -- Transport ----------------------------------------------------------------


class TransportError(StowageError):
    """Network failure, server error, or a response Stowage cannot interpret."""

    default_code = "TransportError"


# -- Validation ---------------------------------------------------------------


class ValidationError(StowageError):
    """Malformed input rejected before or by the provider."""

    default_code = "ValidationError"
    default_status = 400


class InvalidBucketNameError(ValidationError):
    """The bucket name violates the naming rules."""

    default_code = "InvalidBucketName"


class InvalidRegionError(ValidationError):
    """The region identifier is malformed or not accepted by the provider."""

    default_code = "InvalidLocationConstraint"


class IncompleteUploadError(ValidationError):
    """A multipart manifest has missing or duplicated part numbers."""

    default_code = "IncompleteUpload"


# -- Multipart / batch --------------------------------------------------------


class MultipartStateError(StowageError):
    """An illegal transition was attempted on a multipart upload session."""

    default_code = "MultipartStateError"


class DeleteObjectsError(StowageError):
    """One or more keys of a batch delete could not be removed.

    Attributes:
        failures: The per-key failures reported by the provider.
    """

    default_code = "DeleteObjectsError"

    def __init__(self, failures: list[Any], *, bucket: str = "") -> None:
        self.failures = list(failures)
        keys = ", ".join(f.key for f in self.failures[:5])
        more = "" if len(self.failures) <= 5 else f" (+{len(self.failures) - 5} more)"
        super().__init__(
            f"Failed to delete {len(self.failures)} object(s): {keys}{more}",
            resource=bucket,
        )


# -- Classification -----------------------------------------------------------

_CODE_MAP: dict[str, type[StowageError]] = {
    "AccessDenied": AccessDeniedError,
    "AllAccessDisabled": AccessDeniedError,
    "AccountProblem": AccessDeniedError,
    "InvalidAccessKeyId": AuthError,
    "SignatureDoesNotMatch": AuthError,
    "ExpiredToken": AuthError,
    "InvalidToken": AuthError,
    "TokenRefreshRequired": AuthError,
    "RequestTimeTooSkewed": AuthError,
    "AuthorizationHeaderMalformed": AuthError,
    "MissingSecurityHeader": AuthError,
    "NoSuchBucket": BucketNotFoundError,
    "NoSuchKey": ObjectNotFoundError,
    "NoSuchUpload": UploadNotFoundError,
    "BucketAlreadyExists": NameConflictError,
    "BucketAlreadyOwnedByYou": BucketAlreadyOwnedError,
    "BucketNotEmpty": BucketNotEmptyError,
    "InvalidBucketName": InvalidBucketNameError,
    "InvalidLocationConstraint": InvalidRegionError,
    "IllegalLocationConstraintException": InvalidRegionError,
    "InvalidArgument": ValidationError,
    "InvalidRequest": ValidationError,
    "InvalidDigest": ValidationError,
    "InvalidPart": ValidationError,
    "InvalidPartOrder": ValidationError,
    "InvalidRange": ValidationError,
    "EntityTooSmall": ValidationError,
    "EntityTooLarge": ValidationError,
    "KeyTooLongError": ValidationError,
    "MalformedXML": ValidationError,
    "MissingContentLength": ValidationError,
    "BadDigest": TransportError,
    "InternalError": TransportError,
    "ServiceUnavailable": TransportError,
    "SlowDown": TransportError,
    "RequestTimeout": TransportError,
    "PreconditionFailed": TransportError,
}

_STATUS_MAP: dict[int, type[StowageError]] = {
    400: ValidationError,
    401: AuthError,
    403: AccessDeniedError,
    404: NotFoundError,
}


def classify_error(
    status: int,
    code: str = "",
    message: str = "",
    resource: str = "",
    request_id: str = "",
) -> StowageError:
    """Map a provider error response onto the Stowage taxonomy.

    The error code wins over the HTTP status: HEAD responses carry no body,
    so those are classified by status alone.  Anything unrecognised becomes a
    ``TransportError``.

    Args:
        status: HTTP status code of the response.
        code: Provider error code from the ``<Error>`` body, if any.
        message: Provider error message, if any.
        resource: Request path, for diagnostics.
        request_id: Provider request id, for diagnostics.

    Returns:
        An instance of the matching ``StowageError`` subclass (not raised).
    """
    cls = _CODE_MAP.get(code) if code else None
    if cls is None:
        cls = _STATUS_MAP.get(status, TransportError)
    return cls(
        message or code or f"HTTP {status}",
        code=code or None,
        http_status=status,
        resource=resource,
        request_id=request_id,
    )
