"""
Pytest configuration and shared fixtures for all tests.

This file is automatically loaded by pytest and provides:
  - Test configuration (env vars set before any pacematch import)
  - An in-memory path store standing in for the Realtime Database
  - A scriptable geolocation provider
  - A manually advanced clock
"""

import os
import threading
from copy import deepcopy

import pytest

# Set before test modules import pacematch.config (the singleton reads env once).
TEST_ENV = {
    "FIREBASE_PROJECT_ID": "test-project",
    "FIREBASE_DATABASE_URL": "https://test-project-default-rtdb.firebaseio.com/",
    "GOOGLE_APPLICATION_CREDENTIALS": "/config/test-serviceAccountKey.json",
    "DEBUG": "True",
}
for _key, _value in TEST_ENV.items():
    os.environ.setdefault(_key, _value)

from pacematch.tracking.geolocation import Position, PositionError  # noqa: E402

# 2024-01-01T00:00:00Z in epoch ms; keeps timestamps realistic.
BASE_TIME_MS = 1_704_067_200_000


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Keep test env vars in place for the whole session."""
    for key, value in TEST_ENV.items():
        os.environ[key] = value


class MemoryStore:
    """Path-addressed dict store with synchronous subscriptions."""

    def __init__(self, data=None):
        self.data = deepcopy(data) if data else {}
        self.writes = []
        self.removals = []
        self.fail_reads = False
        self.fail_writes = False
        self._subscribers = []
        self._lock = threading.RLock()

    @staticmethod
    def _parts(path):
        return [p for p in path.strip("/").split("/") if p]

    def get(self, path):
        from pacematch.utils.errors import StoreUnavailableError

        if self.fail_reads:
            raise StoreUnavailableError("read failed")
        with self._lock:
            node = self.data
            for part in self._parts(path):
                if not isinstance(node, dict) or part not in node:
                    return None
                node = node[part]
            return deepcopy(node)

    def set(self, path, value):
        from pacematch.utils.errors import StoreUnavailableError

        if self.fail_writes:
            raise StoreUnavailableError("write failed")
        with self._lock:
            parts = self._parts(path)
            node = self.data
            for part in parts[:-1]:
                node = node.setdefault(part, {})
            node[parts[-1]] = deepcopy(value)
            self.writes.append((path, deepcopy(value)))
        self._notify()

    def remove(self, path):
        with self._lock:
            parts = self._parts(path)
            node = self.data
            for part in parts[:-1]:
                node = node.get(part, {})
            node.pop(parts[-1], None)
            self.removals.append(path)
        self._notify()

    def subscribe(self, path, on_change):
        entry = (path, on_change)
        self._subscribers.append(entry)
        on_change(self.get(path) or {})

        def _unsubscribe():
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return _unsubscribe

    def _notify(self):
        for path, callback in list(self._subscribers):
            callback(self.get(path) or {})

    def writes_to(self, prefix):
        return [value for path, value in self.writes if path.startswith(prefix)]


class FakeGeolocation:
    """Geolocation provider whose fixes and errors are pushed by the test."""

    def __init__(self):
        self.watches = {}
        self.cleared = []
        self.options_history = []
        self._next_id = 0

    def get_current_position(self, options):
        return Position(lat=0.0, lng=0.0)

    def watch_position(self, options, on_update, on_error):
        self._next_id += 1
        self.watches[self._next_id] = (on_update, on_error)
        self.options_history.append(options)
        return self._next_id

    def clear_watch(self, watch_id):
        self.cleared.append(watch_id)
        self.watches.pop(watch_id, None)

    @property
    def active_watches(self):
        return len(self.watches)

    def emit(self, lat, lng):
        for on_update, _ in list(self.watches.values()):
            on_update(Position(lat=lat, lng=lng, accuracy=5.0))

    def fail(self, code, message=""):
        for _, on_error in list(self.watches.values()):
            on_error(PositionError(code=code, message=message))


class FakeClock:
    def __init__(self, start=BASE_TIME_MS):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def geolocation():
    return FakeGeolocation()


@pytest.fixture
def make_user(clock):
    """Build a raw users/{id} document, active as of the fake clock."""

    def _make(lat, lng, **fields):
        doc = {"lat": lat, "lng": lng, "timestamp": clock.now}
        doc.update(fields)
        return doc

    return _make
