"""Persistence for engine state.

Two independent JSON records are kept in a key-value store:

- settings: {"enabled", "start_hour", "end_hour"}
- schedule: {"timestamps": [ISO-8601], "delivered": [ISO-8601]}

Read failures fall back to defaults per record, write failures are logged.
Neither ever stops the engine.
"""

import json
import sqlite3
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

import httpx
from dateutil.parser import parse as parse_datetime

import config as app_config
from logger import logger
from . import config
from .types import InvalidWindowError, ScheduledInstant, Settings


class KeyValueStore(ABC):
    """Durable byte storage keyed by string."""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        pass

    @abstractmethod
    async def set(self, key: str, value: bytes) -> None:
        pass


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store (tests, ephemeral hosts)."""

    def __init__(self, initial: Optional[dict[str, bytes]] = None):
        self.data: dict[str, bytes] = dict(initial or {})

    async def get(self, key: str) -> Optional[bytes]:
        return self.data.get(key)

    async def set(self, key: str, value: bytes) -> None:
        self.data[key] = value


class SqliteKeyValueStore(KeyValueStore):
    """Local SQLite file store, WAL mode."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._connection: Optional[sqlite3.Connection] = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._connection is not None:
            return self._connection

        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._connection = sqlite3.connect(self.db_path, timeout=10.0)
        self._connection.execute("PRAGMA journal_mode=WAL")
        self._connection.execute("PRAGMA busy_timeout=5000")
        self._connection.executescript("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value BLOB NOT NULL,
                updated_at INTEGER NOT NULL
            );
        """)
        self._connection.commit()

        logger.info(f"State store initialized: {self.db_path}")
        return self._connection

    @contextmanager
    def _transaction(self):
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    async def get(self, key: str) -> Optional[bytes]:
        row = self._get_connection().execute(
            "SELECT value FROM kv_store WHERE key = ?", (key,)
        ).fetchone()
        return bytes(row[0]) if row else None

    async def set(self, key: str, value: bytes) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, value, int(time.time()))
            )

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None


class SupabaseKeyValueStore(KeyValueStore):
    """Supabase REST table `posture_state(key text primary key, value text)`."""

    TABLE = "posture_state"

    def __init__(self, url: str, key: str, timeout: float = 10):
        self.url = url.rstrip("/")
        self.key = key
        self.timeout = timeout

    def _headers(self) -> dict:
        """Get headers for Supabase API calls."""
        return {
            "apikey": self.key,
            "Authorization": f"Bearer {self.key}",
            "Content-Type": "application/json",
            "Prefer": "resolution=merge-duplicates,return=minimal"
        }

    async def get(self, key: str) -> Optional[bytes]:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"{self.url}/rest/v1/{self.TABLE}",
                headers=self._headers(),
                params={"key": f"eq.{key}", "select": "value"},
                timeout=self.timeout
            )
            response.raise_for_status()
            rows = response.json()
        return rows[0]["value"].encode("utf-8") if rows else None

    async def set(self, key: str, value: bytes) -> None:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"{self.url}/rest/v1/{self.TABLE}",
                headers=self._headers(),
                params={"on_conflict": "key"},
                json={"key": key, "value": value.decode("utf-8")},
                timeout=self.timeout
            )
            response.raise_for_status()


def open_key_value_store() -> KeyValueStore:
    """Supabase when configured, local SQLite otherwise."""
    if app_config.SUPABASE_URL and app_config.SUPABASE_KEY:
        logger.info("Using Supabase state store")
        return SupabaseKeyValueStore(app_config.SUPABASE_URL, app_config.SUPABASE_KEY)
    return SqliteKeyValueStore(app_config.POSTURE_STATE_DB)


def _format_instant(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def _parse_instant(value: str) -> datetime:
    moment = parse_datetime(value)
    # Ensure timezone aware
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def settings_to_record(settings: Settings) -> dict:
    return {
        "enabled": settings.enabled,
        "start_hour": settings.start_hour,
        "end_hour": settings.end_hour,
    }


def settings_from_record(record: dict) -> Settings:
    return Settings(
        enabled=bool(record["enabled"]),
        start_hour=record["start_hour"],
        end_hour=record["end_hour"],
    )


def schedule_to_record(schedule: Iterable[ScheduledInstant]) -> dict:
    schedule = list(schedule)
    return {
        "timestamps": [_format_instant(i.timestamp) for i in schedule],
        "delivered": [_format_instant(i.timestamp) for i in schedule if i.delivered],
    }


def schedule_from_record(record: dict) -> list[ScheduledInstant]:
    timestamps = sorted(_parse_instant(v) for v in record["timestamps"])
    delivered = {_parse_instant(v) for v in record.get("delivered", [])}
    return [ScheduledInstant(ts, ts in delivered) for ts in timestamps]


class StateStore:
    """Round-trips settings and schedule through a KeyValueStore."""

    def __init__(
        self,
        backend: KeyValueStore,
        settings_key: str = config.SETTINGS_KEY,
        schedule_key: str = config.SCHEDULE_KEY,
    ):
        self.backend = backend
        self.settings_key = settings_key
        self.schedule_key = schedule_key

    async def load_settings(self) -> Settings:
        """Load settings, falling back to defaults."""
        try:
            raw = await self.backend.get(self.settings_key)
        except Exception as e:
            logger.error(f"Failed to read settings: {e}")
            return Settings()

        if raw is None:
            return Settings()

        try:
            return settings_from_record(json.loads(raw))
        except (ValueError, KeyError, TypeError, InvalidWindowError) as e:
            logger.error(f"Error loading settings, using defaults: {e}")
            return Settings()

    async def load_schedule(self) -> list[ScheduledInstant]:
        """Load the schedule, falling back to an empty one."""
        try:
            raw = await self.backend.get(self.schedule_key)
        except Exception as e:
            logger.error(f"Failed to read schedule: {e}")
            return []

        if raw is None:
            return []

        try:
            return schedule_from_record(json.loads(raw))
        except (ValueError, KeyError, TypeError, OverflowError) as e:
            logger.error(f"Error loading schedule, starting empty: {e}")
            return []

    async def save_settings(self, settings: Settings) -> bool:
        """Persist settings.

        Returns:
            True if saved successfully
        """
        return await self._save(self.settings_key, settings_to_record(settings))

    async def save_schedule(self, schedule: Iterable[ScheduledInstant]) -> bool:
        """Persist the schedule and its delivered set.

        Returns:
            True if saved successfully
        """
        return await self._save(self.schedule_key, schedule_to_record(schedule))

    async def _save(self, key: str, record: dict) -> bool:
        try:
            await self.backend.set(key, json.dumps(record).encode("utf-8"))
            return True
        except Exception as e:
            logger.error(f"Failed to save {key}: {e}")
            return False
