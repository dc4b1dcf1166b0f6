"""Pytest configuration and fixtures."""

import os
import random
import sys
from datetime import datetime, timedelta, timezone
from unittest.mock import patch, AsyncMock
from zoneinfo import ZoneInfo

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from posture.gateways import NativeAlarmScheduler, NotificationSurface, PermissionGateway
from posture.store import MemoryKeyValueStore, StateStore
from posture.types import Permission

BRT = ZoneInfo("America/Sao_Paulo")


def brt(year, month, day, hour, minute=0, second=0) -> datetime:
    """Brasília wall-clock time as an aware UTC instant."""
    return datetime(year, month, day, hour, minute, second, tzinfo=BRT).astimezone(timezone.utc)


class FakeClock:
    """Controllable clock for the engine."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeSurface(NotificationSurface):
    """Records fired notifications."""

    def __init__(self, fail: bool = False):
        self.fired: list[tuple[str, str]] = []
        self.fail = fail

    async def fire_now(self, title: str, body: str) -> None:
        if self.fail:
            raise RuntimeError("surface offline")
        self.fired.append((title, body))


class FakePermissions(PermissionGateway):
    """Permission gateway with a scripted answer."""

    def __init__(self, answer: Permission = Permission.GRANTED, current: Permission = Permission.NOT_REQUESTED):
        self.answer = answer
        self._current = current
        self.requests = 0

    def current(self) -> Permission:
        return self._current

    async def request(self) -> Permission:
        self.requests += 1
        self._current = self.answer
        return self.answer


class FakeAlarmScheduler(NativeAlarmScheduler):
    """Records native alarm calls in order."""

    def __init__(self, fail_schedule: bool = False):
        self.calls: list[tuple] = []
        self.alarms: dict[int, datetime] = {}
        self.fail_schedule = fail_schedule

    async def cancel(self, ids) -> None:
        ids = set(ids)
        self.calls.append(("cancel", ids))
        for alarm_id in ids:
            self.alarms.pop(alarm_id, None)

    async def schedule_at(self, alarm_id, instant, title, body) -> None:
        if self.fail_schedule:
            raise PermissionError("exact alarms not allowed")
        self.calls.append(("schedule", alarm_id, instant))
        self.alarms[alarm_id] = instant


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def surface():
    return FakeSurface()


@pytest.fixture
def permissions():
    return FakePermissions()


@pytest.fixture
def backend():
    return MemoryKeyValueStore()


@pytest.fixture
def state_store(backend):
    return StateStore(backend)


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx client."""
    with patch('httpx.AsyncClient') as mock:
        client = AsyncMock()
        mock.return_value.__aenter__.return_value = client
        yield client
