"""Candidate window calculation.

Maps the current instant onto the reference-timezone daily window and decides
whether new reminders belong to today or tomorrow:

- before the window opens: today's full window
- inside it with more than LATE_SLACK_MINUTES left: from now + LEAD_MINUTES
  to the end of today's window
- otherwise: tomorrow's full window

Wall-clock alignment follows the reference timezone, never the host's local
zone.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from . import config
from .types import Settings


def reference_timezone(name: Optional[str] = None) -> ZoneInfo:
    """Get the reference timezone (defaults to config)."""
    return ZoneInfo(name or config.REFERENCE_TIMEZONE)


def ensure_aware(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass(frozen=True)
class CandidateWindow:
    """Half-open range of reference-local minutes on a given day."""
    day: date
    low_minute: int
    high_minute: int
    is_tomorrow: bool
    tz: ZoneInfo

    @property
    def span(self) -> int:
        return self.high_minute - self.low_minute

    def instant_at(self, minute: int) -> datetime:
        """Convert a reference-local minute of day to an aware UTC instant."""
        if not self.low_minute <= minute < self.high_minute:
            raise ValueError(
                f"Minute {minute} outside window [{self.low_minute}, {self.high_minute})"
            )
        local = datetime.combine(self.day, time(minute // 60, minute % 60), tzinfo=self.tz)
        return local.astimezone(timezone.utc)


def compute_window(
    now: Optional[datetime],
    settings: Settings,
    tz: Optional[ZoneInfo] = None,
    slack_minutes: int = config.LATE_SLACK_MINUTES,
    lead_minutes: int = config.LEAD_MINUTES,
) -> CandidateWindow:
    """Decide the candidate range for the next reminders.

    Args:
        now: Current instant (defaults to the current UTC time)
        settings: Settings holding the daily window
        tz: Reference timezone (defaults to config)
        slack_minutes: Remaining window below which today is skipped
        lead_minutes: Minimum distance from now for same-day reminders

    Returns:
        CandidateWindow for today or tomorrow
    """
    tz = tz or reference_timezone()
    now = ensure_aware(now or datetime.now(timezone.utc))
    local = now.astimezone(tz)
    low, high = settings.window_minutes

    current = (
        local.hour * 60
        + local.minute
        + local.second / 60
        + local.microsecond / 60_000_000
    )

    if current < low:
        return CandidateWindow(local.date(), low, high, False, tz)

    if current < high and high - current > slack_minutes:
        start = math.ceil(current + lead_minutes)
        return CandidateWindow(local.date(), start, high, False, tz)

    return CandidateWindow(local.date() + timedelta(days=1), low, high, True, tz)
