"""
Shared fixtures for the guard service tests.

Every test builds its own app through ``create_app`` with a manual clock, so
limiter state never leaks between tests.
"""

from typing import Any, Callable

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from churchsite.main import create_app
from churchsite.settings import Settings

RATE_LIMIT_PATH = "/api/auth/rate-limit"


class ManualClock:
    """Clock whose time only moves when a test advances it."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    def _make(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "auth_rate_limit_max_attempts": 5,
            "auth_rate_limit_window_seconds": 60,
            "auth_rate_limit_lockout_seconds": 900,
            "donation_rate_limit_per_minute": 10,
            "webhook_rate_limit_per_minute": 50,
            "rate_limit_max_entries": 10_000,
            "donation_min_cents": 100,
            "donation_max_cents": 10_000_000,
            "log_level": "DEBUG",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def app(make_settings, clock) -> FastAPI:
    return create_app(make_settings(), clock=clock)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
