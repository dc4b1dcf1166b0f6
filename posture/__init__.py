"""Posture reminders: random daily reminders within a reference-timezone window.

Schedules are drawn by the generator, tracked for dedup by the tracker,
delivered by a polling or native strategy and persisted through StateStore.
"""

from .types import (
    EngineState,
    EngineStatus,
    InvalidWindowError,
    Permission,
    ScheduledInstant,
    Settings,
)
from .window import CandidateWindow, compute_window, reference_timezone
from .generator import generate_schedule
from .tracker import DeliveryTracker
from .gateways import (
    NativeAlarmScheduler,
    NotificationSurface,
    PermissionGateway,
    ChannelPermissionGateway,
    DiscordChannelSurface,
)
from .dispatcher import (
    DeliveryStrategy,
    NativeSchedulingError,
    NativeStrategy,
    PollingStrategy,
    select_strategy,
)
from .store import (
    KeyValueStore,
    MemoryKeyValueStore,
    SqliteKeyValueStore,
    SupabaseKeyValueStore,
    StateStore,
    open_key_value_store,
)
from .alarms import ApschedulerAlarmScheduler
from .events import EventSource, IntervalEventSource, ForegroundEventSource
from .engine import PostureEngine
from .handler import handle_posture_intent

__all__ = [
    "EngineState",
    "EngineStatus",
    "InvalidWindowError",
    "Permission",
    "ScheduledInstant",
    "Settings",
    "CandidateWindow",
    "compute_window",
    "reference_timezone",
    "generate_schedule",
    "DeliveryTracker",
    "NativeAlarmScheduler",
    "NotificationSurface",
    "PermissionGateway",
    "ChannelPermissionGateway",
    "DiscordChannelSurface",
    "DeliveryStrategy",
    "NativeSchedulingError",
    "NativeStrategy",
    "PollingStrategy",
    "select_strategy",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqliteKeyValueStore",
    "SupabaseKeyValueStore",
    "StateStore",
    "open_key_value_store",
    "ApschedulerAlarmScheduler",
    "EventSource",
    "IntervalEventSource",
    "ForegroundEventSource",
    "PostureEngine",
    "handle_posture_intent",
]
