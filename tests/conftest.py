"""Shared fixtures for HTTP-level tests."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from formcraft.api import create_app
from formcraft.runtime import FormRuntime
from formcraft.settings import Settings
from formcraft.store import InMemoryStore


class StepClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.now = self.now + timedelta(seconds=1)
        return self.now


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def runtime(settings):
    return FormRuntime(store=InMemoryStore(), settings=settings, clock=StepClock())


@pytest.fixture
def client(runtime):
    return TestClient(create_app(runtime))


@pytest.fixture
def auth():
    """Headers of a signed-in user."""
    return {"X-Authenticated-User": "user_1"}
