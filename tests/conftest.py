"""
Shared fixtures for gallery API client tests.
"""

import pytest
import respx

from gallery_api.services.client import GalleryApiClient
from gallery_api.settings import Settings

BASE_URL = "https://app.test"
API_HOST = "app.test"


class FakeClock:
    """Manually advanced clock returning Unix seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Async sleep stand-in that records requested delays."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        api_base_url=BASE_URL,
        api_tokens=["tok-1", "tok-2"],
        website_property_ids=["111"],
        rate_limit_requests=30,
        circuit_breaker_threshold=5,
        circuit_breaker_timeout=300,
    )


@pytest.fixture
def api():
    """respx router intercepting every httpx request."""
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest.fixture
async def client(settings, clock, sleeper):
    gallery_client = GalleryApiClient(settings=settings, clock=clock, sleep=sleeper)
    yield gallery_client
    await gallery_client.close()
