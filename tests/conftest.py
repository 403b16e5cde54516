"""
Shared pytest fixtures for notification preference tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from notification_preferences.defaults import create_defaults
from notification_preferences.migrations import MigrationRegistry
from notification_preferences.store import InMemoryPreferenceStore
from notification_preferences.service import PreferenceService

# Wednesday
FIXED_NOW = datetime(2026, 3, 4, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock injected into the service."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FailingStore:
    """Store whose reads and/or writes raise."""

    def __init__(self, fail_get: bool = False, fail_set: bool = False, initial=None):
        self.fail_get = fail_get
        self.fail_set = fail_set
        self.data = dict(initial or {})
        self.get_calls = 0
        self.set_calls = 0

    async def get(self, key):
        self.get_calls += 1
        if self.fail_get:
            raise ConnectionError("storage unavailable")
        return self.data.get(key)

    async def set(self, key, value):
        self.set_calls += 1
        if self.fail_set:
            raise ConnectionError("storage unavailable")
        self.data[key] = value


class _FakeAsyncRedis:
    def __init__(self):
        self.store = {}
        self.closed = False

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value):
        self.store[key] = value

    async def aclose(self):
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryPreferenceStore()


@pytest.fixture
def registry():
    """Empty migration registry so tests never see shipped migrations."""
    return MigrationRegistry()


@pytest.fixture
def service(store, clock, registry):
    return PreferenceService(store, clock=clock, migrations=registry)


@pytest.fixture
def defaults():
    return create_defaults(FIXED_NOW)


@pytest.fixture
def fake_redis():
    return _FakeAsyncRedis()
