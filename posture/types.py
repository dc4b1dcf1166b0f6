"""Type definitions for the posture reminder engine."""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from . import config


class InvalidWindowError(ValueError):
    """Daily window settings that cannot hold a single reminder."""


class Permission(str, Enum):
    """Whether the host lets the engine deliver notifications."""
    GRANTED = "granted"
    DENIED = "denied"
    NOT_REQUESTED = "not_requested"


class EngineStatus(str, Enum):
    """Controller state machine states."""
    DISABLED = "disabled"
    REQUESTING_PERMISSION = "requesting_permission"
    SCHEDULED = "scheduled"  # Live, possibly partially delivered schedule


@dataclass(frozen=True)
class Settings:
    """User settings. Hours are reference-local and may be fractional."""
    enabled: bool = False
    start_hour: float = config.DEFAULT_START_HOUR
    end_hour: float = config.DEFAULT_END_HOUR

    def __post_init__(self):
        for name in ("start_hour", "end_hour"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidWindowError(f"{name} must be a number, got {value!r}")
            if not 0 <= value < 24:
                raise InvalidWindowError(f"{name} must be in [0, 24), got {value}")
        if self.start_hour >= self.end_hour:
            raise InvalidWindowError(
                f"start_hour ({self.start_hour}) must be before end_hour ({self.end_hour})"
            )
        low, high = self.window_minutes
        if low >= high:
            raise InvalidWindowError(
                f"Window {self.start_hour}-{self.end_hour} holds no whole minute"
            )

    @property
    def window_minutes(self) -> tuple[int, int]:
        """Half-open [low, high) window in whole minutes of the day.

        Both bounds are rounded up so every minute m in range satisfies
        start_hour <= m / 60 < end_hour.
        """
        return math.ceil(self.start_hour * 60), math.ceil(self.end_hour * 60)


@dataclass(frozen=True)
class ScheduledInstant:
    """A reminder instant. Identity is the UTC timestamp."""
    timestamp: datetime
    delivered: bool = False


@dataclass(frozen=True)
class EngineState:
    """Observable snapshot of the engine."""
    settings: Settings
    schedule: tuple[ScheduledInstant, ...] = field(default_factory=tuple)
    permission: Permission = Permission.NOT_REQUESTED
    status: EngineStatus = EngineStatus.DISABLED
    is_supported: bool = True
    strategy: Optional[str] = None

    @property
    def next_reminder(self) -> Optional[ScheduledInstant]:
        """Earliest undelivered instant, if any."""
        for instant in self.schedule:
            if not instant.delivered:
                return instant
        return None
