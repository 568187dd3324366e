from datetime import UTC, date, datetime

import pytest

from flashdeck.domain.models import StorageKeys
from flashdeck.infrastructure.adapters import MemoryStorageBackend
from flashdeck.infrastructure.persistence import PersistentStore

TODAY = date(2024, 6, 15)
NOW = datetime(2024, 6, 15, 12, 0, tzinfo=UTC)


class ManualTimer:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class ManualTimers:
    """Timer factory that only fires when the test says so."""

    def __init__(self):
        self.created: list[ManualTimer] = []

    def __call__(self, delay, callback):
        timer = ManualTimer(delay, callback)
        self.created.append(timer)
        return timer

    @property
    def active(self) -> list[ManualTimer]:
        return [t for t in self.created if not t.cancelled and not t.fired]

    def fire_all(self) -> int:
        fired = 0
        for timer in self.active:
            # An earlier callback may have cancelled this one
            if timer.cancelled:
                continue
            timer.fired = True
            timer.callback()
            fired += 1
        return fired


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def timers():
    return ManualTimers()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def keys():
    return StorageKeys.from_prefix()


@pytest.fixture
def backend():
    return MemoryStorageBackend()


@pytest.fixture
def store(backend, timers, clock, keys):
    return PersistentStore(
        backend,
        timer_factory=timers,
        clock=clock,
        history_key=keys.history,
        journal_key=keys.journal,
        today=lambda: TODAY,
    )


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config/logs
    monkeypatch.setenv("HOME", str(home))
    for var in ("FLASHDECK_BACKEND", "FLASHDECK_DATA_DIR", "FLASHDECK_KEY_PREFIX"):
        monkeypatch.delenv(var, raising=False)
    return home
