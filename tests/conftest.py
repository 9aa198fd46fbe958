import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

from impcg_companion.modules.storage import MemoryStore


class FakeClock:
    """Settable clock for engines that take a ``clock`` callable."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def audit():
    return Mock()
