"""Credential providers for request signing.

A provider exposes ``resolve()`` and is called for every request, so
refreshable credentials rotate without rebuilding the facade.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Mapping, Protocol

from stowage.errors import AuthError

if TYPE_CHECKING:
    from stowage.config import CredentialsConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    """Signing material for one request.

    Attributes:
        access_key: Access key id.
        secret_key: Secret access key.
        session_token: Temporary session token, if any.
        expires_at: When temporary credentials stop working (UTC).
    """

    access_key: str
    secret_key: str
    session_token: str | None = None
    expires_at: datetime | None = None

    def __repr__(self) -> str:
        return f"Credentials(access_key={self.access_key!r}, secret_key='***')"


class CredentialProvider(Protocol):
    """Supplies signing material; called once per request."""

    def resolve(self) -> Credentials:
        """Return current credentials.

        Raises:
            AuthError: If no usable credentials are available.
        """
        ...


class StaticCredentialProvider:
    """Fixed credentials supplied at construction time."""

    def __init__(
        self, access_key: str, secret_key: str, session_token: str | None = None
    ) -> None:
        self._credentials = Credentials(
            access_key=access_key,
            secret_key=secret_key,
            session_token=session_token or None,
        )

    def resolve(self) -> Credentials:
        if not self._credentials.access_key or not self._credentials.secret_key:
            raise AuthError("Static credentials are incomplete", code="MissingCredentials")
        return self._credentials


class EnvironmentCredentialProvider:
    """Reads ``AWS_ACCESS_KEY_ID`` / ``AWS_SECRET_ACCESS_KEY`` / ``AWS_SESSION_TOKEN``.

    The environment is re-read on every call.
    """

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = os.environ if environ is None else environ

    def resolve(self) -> Credentials:
        access_key = self._environ.get("AWS_ACCESS_KEY_ID", "")
        secret_key = self._environ.get("AWS_SECRET_ACCESS_KEY", "")
        if not access_key or not secret_key:
            raise AuthError(
                "AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY must be set",
                code="MissingCredentials",
            )
        return Credentials(
            access_key=access_key,
            secret_key=secret_key,
            session_token=self._environ.get("AWS_SESSION_TOKEN") or None,
        )


class RefreshingCredentialProvider:
    """Caches credentials from ``fetch`` until shortly before they expire.

    Attributes:
        refresh_margin: How long before ``expires_at`` a refresh is forced.
    """

    def __init__(
        self,
        fetch: Callable[[], Credentials],
        refresh_margin: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._fetch = fetch
        self.refresh_margin = refresh_margin
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._cached: Credentials | None = None
        self._lock = threading.Lock()

    def resolve(self) -> Credentials:
        with self._lock:
            if self._cached is None or self._needs_refresh(self._cached):
                logger.debug("Refreshing credentials")
                self._cached = self._fetch()
            return self._cached

    def _needs_refresh(self, credentials: Credentials) -> bool:
        if credentials.expires_at is None:
            return False
        return self._clock() >= credentials.expires_at - self.refresh_margin


def create_credential_provider(config: "CredentialsConfig") -> CredentialProvider:
    """Create a credential provider based on configuration.

    Args:
        config: The credentials configuration section.

    Returns:
        A provider implementing ``resolve()``.

    Raises:
        ValueError: If the source is unknown.
    """
    if config.source == "env":
        return EnvironmentCredentialProvider()
    elif config.source == "static":
        return StaticCredentialProvider(
            access_key=config.access_key,
            secret_key=config.secret_key,
            session_token=config.session_token,
        )
    else:
        raise ValueError(f"Unknown credentials source: {config.source}")
