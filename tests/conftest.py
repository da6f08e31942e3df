"""Shared pytest fixtures for Stowage tests.

Facade tests run against the in-memory S3 emulator in ``s3_emulator.py``.
The emulator's FastAPI app is driven through ``fastapi.testclient.TestClient``,
which is an ``httpx.Client`` and can be handed straight to ``HttpTransport``.
"""

import pytest
from fastapi.testclient import TestClient

from s3_emulator import ACCESS_KEY, ENDPOINT, REGION, SECRET_KEY, S3Emulator, create_emulator_app
from stowage.credentials import StaticCredentialProvider
from stowage.facade import ObjectStoreFacade
from stowage.transport import HttpTransport


# Small parts keep multipart tests fast; the emulator enforces no minimum.
PART_SIZE = 1024


@pytest.fixture
def emulator() -> S3Emulator:
    """Fresh emulator state for each test."""
    return S3Emulator()


@pytest.fixture
def http_client(emulator: S3Emulator) -> TestClient:
    """A TestClient bound to the emulator app."""
    return TestClient(create_emulator_app(emulator), base_url=ENDPOINT)


@pytest.fixture
def transport(http_client: TestClient) -> HttpTransport:
    return HttpTransport(
        ENDPOINT,
        REGION,
        StaticCredentialProvider(ACCESS_KEY, SECRET_KEY),
        client=http_client,
    )


@pytest.fixture
def facade(transport: HttpTransport) -> ObjectStoreFacade:
    """A facade talking to the emulator with 1 KiB parts and 4 workers."""
    return ObjectStoreFacade(
        transport,
        region=REGION,
        part_size_bytes=PART_SIZE,
        max_workers=4,
        min_part_size_bytes=1,
    )


@pytest.fixture
def bucket(facade: ObjectStoreFacade) -> str:
    """An existing, empty bucket."""
    facade.create_bucket("test-bucket")
    return "test-bucket"
