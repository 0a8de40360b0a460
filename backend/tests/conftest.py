"""Shared pytest fixtures: a controllable clock and an app with fresh stores."""

import pytest
from fastapi.testclient import TestClient

from app import create_app
from services.admin_auth import AdminAuthenticator
from services.cache import TTLCache
from services.rate_limit import SlidingWindowRateLimiter

ADMIN_KEY = "correct-horse-battery-staple"


class FakeClock:
    """Manually advanced clock, in seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TTLCache(max_entries=10, clock=clock)


@pytest.fixture
def authenticator(clock):
    return AdminAuthenticator(ADMIN_KEY, clock=clock)


@pytest.fixture
def rate_limiter(clock):
    return SlidingWindowRateLimiter(max_requests=5, window_seconds=60, clock=clock)


@pytest.fixture
def client(cache, authenticator, rate_limiter):
    return TestClient(create_app(cache=cache, authenticator=authenticator, rate_limiter=rate_limiter))
