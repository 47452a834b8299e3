"""Shared fixtures for client tests."""

from collections.abc import AsyncIterator

import httpx
import pytest
import pytest_asyncio

from raffle_client.api.client import ApiClient
from raffle_client.api.config import ApiConfig
from raffle_client.api.metrics import ApiMetrics
from raffle_client.api.models import Session
from tests.helpers.backend import (
    BASE_URL,
    FakeBackend,
    RecordingReporter,
    RecordingSessionStore,
    SleepRecorder,
)


@pytest.fixture(autouse=True)
def reset_metrics() -> None:
    """Start every test with fresh metrics."""
    ApiMetrics.reset()


@pytest.fixture
def backend() -> FakeBackend:
    """Create an empty scripted backend."""
    return FakeBackend()


@pytest.fixture
def store() -> RecordingSessionStore:
    """Create a store holding a signed-in session."""
    return RecordingSessionStore(
        Session(access_token="access-1", refresh_token="refresh-1", user={"id": 7})
    )


@pytest.fixture
def sleeper() -> SleepRecorder:
    """Create a sleep recorder."""
    return SleepRecorder()


@pytest.fixture
def reporter() -> RecordingReporter:
    """Create a recording error reporter."""
    return RecordingReporter()


@pytest_asyncio.fixture
async def http_client(backend: FakeBackend) -> AsyncIterator[httpx.AsyncClient]:
    """Create an HTTP client wired to the scripted backend."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(backend.handler)) as client:
        yield client


@pytest.fixture
def client(
    http_client: httpx.AsyncClient,
    store: RecordingSessionStore,
    sleeper: SleepRecorder,
    reporter: RecordingReporter,
) -> ApiClient:
    """Create an API client against the scripted backend."""
    return ApiClient(
        ApiConfig(base_url=BASE_URL),
        store,
        reporter=reporter,
        http_client=http_client,
        sleep=sleeper,
    )
