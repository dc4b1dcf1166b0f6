"""Tests for state persistence.

Uses pytest fixtures for proper test isolation - each test gets a fresh database.
"""

import json
from unittest.mock import Mock

import httpx
import pytest

from posture import config
from posture.store import (
    MemoryKeyValueStore,
    SqliteKeyValueStore,
    StateStore,
    SupabaseKeyValueStore,
    schedule_from_record,
    schedule_to_record,
)
from posture.types import ScheduledInstant, Settings

from conftest import brt

T1 = brt(2026, 3, 10, 14, 3)
T2 = brt(2026, 3, 10, 18, 47)


class BrokenStore(MemoryKeyValueStore):
    """Backend whose every call fails."""

    async def get(self, key):
        raise OSError("disk unavailable")

    async def set(self, key, value):
        raise OSError("disk unavailable")


@pytest.fixture
def sqlite_store(tmp_path):
    store = SqliteKeyValueStore(str(tmp_path / "state.db"))
    yield store
    store.close()


@pytest.mark.asyncio
async def test_defaults_when_empty(state_store):
    assert await state_store.load_settings() == Settings()
    assert await state_store.load_schedule() == []


@pytest.mark.asyncio
async def test_settings_round_trip(state_store):
    settings = Settings(enabled=True, start_hour=9.5, end_hour=21)
    assert await state_store.save_settings(settings) is True

    assert await state_store.load_settings() == settings


@pytest.mark.asyncio
async def test_schedule_round_trip_keeps_delivered(state_store):
    schedule = [ScheduledInstant(T1, delivered=True), ScheduledInstant(T2)]
    await state_store.save_schedule(schedule)

    assert await state_store.load_schedule() == schedule


@pytest.mark.asyncio
async def test_record_layout(state_store, backend):
    await state_store.save_schedule([ScheduledInstant(T1, delivered=True), ScheduledInstant(T2)])
    await state_store.save_settings(Settings(enabled=True))

    schedule = json.loads(backend.data[config.SCHEDULE_KEY])
    settings = json.loads(backend.data[config.SETTINGS_KEY])

    assert schedule == {
        "timestamps": ["2026-03-10T17:03:00.000+00:00", "2026-03-10T21:47:00.000+00:00"],
        "delivered": ["2026-03-10T17:03:00.000+00:00"],
    }
    assert settings == {"enabled": True, "start_hour": 10.0, "end_hour": 22.0}


def test_record_accepts_other_offsets():
    """Instants written with another offset map back to the same UTC instant."""
    record = {"timestamps": ["2026-03-10T14:03:00-03:00"], "delivered": ["2026-03-10T17:03:00Z"]}
    assert schedule_from_record(record) == [ScheduledInstant(T1, delivered=True)]


def test_record_without_delivered_list():
    record = schedule_to_record([ScheduledInstant(T1)])
    del record["delivered"]
    assert schedule_from_record(record) == [ScheduledInstant(T1)]


@pytest.mark.asyncio
async def test_corrupt_settings_fall_back_to_defaults(backend, state_store):
    backend.data[config.SETTINGS_KEY] = b"{not json"
    assert await state_store.load_settings() == Settings()


@pytest.mark.asyncio
async def test_invalid_window_falls_back_to_defaults(backend, state_store):
    backend.data[config.SETTINGS_KEY] = json.dumps(
        {"enabled": True, "start_hour": 22, "end_hour": 10}
    ).encode()
    assert await state_store.load_settings() == Settings()


@pytest.mark.asyncio
async def test_corrupt_schedule_falls_back_to_empty(backend, state_store):
    backend.data[config.SCHEDULE_KEY] = json.dumps({"timestamps": ["yesterday-ish"]}).encode()
    assert await state_store.load_schedule() == []


@pytest.mark.asyncio
async def test_records_are_independent(backend, state_store):
    """A broken schedule record does not reset valid settings."""
    settings = Settings(enabled=True, start_hour=8, end_hour=20)
    await state_store.save_settings(settings)
    backend.data[config.SCHEDULE_KEY] = b"[]"

    assert await state_store.load_settings() == settings
    assert await state_store.load_schedule() == []


@pytest.mark.asyncio
async def test_backend_failures_are_not_fatal():
    store = StateStore(BrokenStore())

    assert await store.load_settings() == Settings()
    assert await store.load_schedule() == []
    assert await store.save_settings(Settings()) is False
    assert await store.save_schedule([]) is False


@pytest.mark.asyncio
async def test_sqlite_round_trip(sqlite_store):
    await sqlite_store.set("key", b"value")
    await sqlite_store.set("key", b"updated")

    assert await sqlite_store.get("key") == b"updated"
    assert await sqlite_store.get("missing") is None


@pytest.mark.asyncio
async def test_sqlite_survives_reopen(tmp_path):
    db_path = str(tmp_path / "state.db")
    first = StateStore(SqliteKeyValueStore(db_path))
    await first.save_schedule([ScheduledInstant(T1, delivered=True)])
    first.backend.close()

    second = StateStore(SqliteKeyValueStore(db_path))
    try:
        assert await second.load_schedule() == [ScheduledInstant(T1, delivered=True)]
    finally:
        second.backend.close()


class TestSupabaseStore:
    """Supabase REST backend with a mocked httpx client."""

    @pytest.mark.asyncio
    async def test_get_returns_value(self, mock_httpx_client):
        response = Mock()
        response.json.return_value = [{"value": '{"enabled": true}'}]
        mock_httpx_client.get.return_value = response

        store = SupabaseKeyValueStore("https://example.supabase.co/", "secret")
        assert await store.get("postura-settings") == b'{"enabled": true}'

        args, kwargs = mock_httpx_client.get.call_args
        assert args[0] == "https://example.supabase.co/rest/v1/posture_state"
        assert kwargs["params"] == {"key": "eq.postura-settings", "select": "value"}

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, mock_httpx_client):
        response = Mock()
        response.json.return_value = []
        mock_httpx_client.get.return_value = response

        store = SupabaseKeyValueStore("https://example.supabase.co", "secret")
        assert await store.get("postura-settings") is None

    @pytest.mark.asyncio
    async def test_set_upserts(self, mock_httpx_client):
        mock_httpx_client.post.return_value = Mock()

        store = SupabaseKeyValueStore("https://example.supabase.co", "secret")
        await store.set("postura-settings", b"{}")

        _, kwargs = mock_httpx_client.post.call_args
        assert kwargs["json"] == {"key": "postura-settings", "value": "{}"}
        assert kwargs["params"] == {"on_conflict": "key"}
        assert "merge-duplicates" in kwargs["headers"]["Prefer"]

    @pytest.mark.asyncio
    async def test_http_error_is_not_fatal(self, mock_httpx_client):
        response = Mock()
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "boom", request=Mock(), response=Mock()
        )
        mock_httpx_client.post.return_value = response

        store = StateStore(SupabaseKeyValueStore("https://example.supabase.co", "secret"))
        assert await store.save_settings(Settings()) is False
