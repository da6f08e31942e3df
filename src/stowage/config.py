"""Configuration loading and Pydantic models for Stowage."""

from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field

from stowage.validation import MIN_PART_SIZE


class EndpointConfig(BaseModel):
    """Service endpoint and default region."""

    url: str = "https://s3.us-east-1.amazonaws.com"
    region: str = "us-east-1"
    default_bucket: str = ""


class CredentialsConfig(BaseModel):
    """Where signing credentials come from."""

    source: str = "env"
    access_key: str = ""
    secret_key: str = ""
    session_token: str | None = None


class TransferConfig(BaseModel):
    """Multipart transfer tuning."""

    part_size_mib: int = 10
    max_workers: int = 8
    min_part_size_bytes: int = MIN_PART_SIZE

    @property
    def part_size_bytes(self) -> int:
        return self.part_size_mib * 1024 * 1024


class HttpConfig(BaseModel):
    """HTTP client settings."""

    timeout_seconds: float = 60.0
    max_connections: int = 16
    verify_tls: bool = True


class LoggingConfig(BaseModel):
    """Log level and output format."""

    level: str = "INFO"
    format: str = "text"


class ObservabilityConfig(BaseModel):
    """Metrics output; an empty path disables metrics."""

    metrics_file: str = ""


class StowageConfig(BaseModel):
    """Top-level Stowage configuration."""

    endpoint: EndpointConfig = Field(default_factory=EndpointConfig)
    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig)
    transfer: TransferConfig = Field(default_factory=TransferConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


def _parse_endpoint(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the endpoint section from YAML data into a dict for Pydantic."""
    if data is None:
        return {}
    return {
        "url": data.get("url", "https://s3.us-east-1.amazonaws.com"),
        "region": data.get("region", "us-east-1"),
        "default_bucket": data.get("default_bucket") or "",
    }


def _parse_credentials(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the credentials section from YAML data.

    An empty ``session_token`` is treated as absent.
    """
    if data is None:
        return {}
    return {
        "source": data.get("source", "env"),
        "access_key": data.get("access_key") or "",
        "secret_key": data.get("secret_key") or "",
        "session_token": data.get("session_token") or None,
    }


def _parse_transfer(data: dict[str, Any] | None) -> dict[str, Any]:
    if data is None:
        return {}
    return {
        "part_size_mib": data.get("part_size_mib", 10),
        "max_workers": data.get("max_workers", 8),
        "min_part_size_bytes": data.get("min_part_size_bytes", MIN_PART_SIZE),
    }


def _parse_http(data: dict[str, Any] | None) -> dict[str, Any]:
    if data is None:
        return {}
    return {
        "timeout_seconds": data.get("timeout_seconds", 60.0),
        "max_connections": data.get("max_connections", 16),
        "verify_tls": data.get("verify_tls", True),
    }


def _parse_logging(data: dict[str, Any] | None) -> dict[str, Any]:
    if data is None:
        return {}
    return {
        "level": data.get("level", "INFO"),
        "format": data.get("format", "text"),
    }


def _parse_observability(data: dict[str, Any] | None) -> dict[str, Any]:
    if data is None:
        return {}
    return {"metrics_file": data.get("metrics_file") or ""}


def load_config(path: Path) -> StowageConfig:
    """Load a StowageConfig from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A fully populated StowageConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        pydantic.ValidationError: If a value has the wrong type.
    """
    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    return StowageConfig(
        endpoint=EndpointConfig(**_parse_endpoint(raw.get("endpoint"))),
        credentials=CredentialsConfig(**_parse_credentials(raw.get("credentials"))),
        transfer=TransferConfig(**_parse_transfer(raw.get("transfer"))),
        http=HttpConfig(**_parse_http(raw.get("http"))),
        logging=LoggingConfig(**_parse_logging(raw.get("logging"))),
        observability=ObservabilityConfig(**_parse_observability(raw.get("observability"))),
    )


def apply_env_overrides(config: StowageConfig, environ: Mapping[str, str]) -> StowageConfig:
    """Apply environment variable overrides in place.

    ``STOWAGE_ENDPOINT_URL`` replaces the endpoint URL, ``AWS_REGION`` the
    region and ``AWS_S3_BUCKET`` the default bucket.  Empty values are ignored.

    Returns:
        The same config object, for chaining.
    """
    if environ.get("STOWAGE_ENDPOINT_URL"):
        config.endpoint.url = environ["STOWAGE_ENDPOINT_URL"]
    if environ.get("AWS_REGION"):
        config.endpoint.region = environ["AWS_REGION"]
    if environ.get("AWS_S3_BUCKET"):
        config.endpoint.default_bucket = environ["AWS_S3_BUCKET"]
    return config
