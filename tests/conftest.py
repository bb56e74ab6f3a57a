from datetime import datetime, timedelta, timezone

import pytest

from dentalcare.auth import AuthStore
from dentalcare.clinic import ClinicStore
from dentalcare.storage import KeyValueStore


class FakeClock:
    """Wall clock the tests move by hand."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeLoop:
    """Stand-in for a Tk widget's after/after_cancel."""

    def __init__(self):
        self.pending = {}
        self.cancelled = []
        self._next = 0

    def after(self, ms, callback):
        self._next += 1
        token = f"after#{self._next}"
        self.pending[token] = (ms, callback)
        return token

    def after_cancel(self, token):
        self.cancelled.append(token)
        self.pending.pop(token, None)

    def fire(self):
        token, (_ms, callback) = next(iter(self.pending.items()))
        del self.pending[token]
        callback()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def loop():
    return FakeLoop()


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "clinic_store.sqlite"


@pytest.fixture
def kv(store_path):
    store = KeyValueStore(store_path)
    yield store
    store.close()


@pytest.fixture
def auth(kv, clock):
    return AuthStore(kv, clock=clock)


@pytest.fixture
def clinic(kv, clock):
    return ClinicStore(kv, clock=clock)
