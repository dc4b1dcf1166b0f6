"""Dedup and delivery tracking for the current schedule.

The tracker is the only holder of schedule state. Delivered flags are kept
by timestamp, so a stale ScheduledInstant copy held by a caller can never
re-fire once the tracker has marked it.
"""

from datetime import datetime, timedelta
from typing import Iterable

from . import config
from .types import ScheduledInstant


class DeliveryTracker:
    """Scheduled instants plus the subset already delivered."""

    def __init__(
        self,
        instants: Iterable[ScheduledInstant] = (),
        due_window: timedelta = timedelta(seconds=config.DUE_WINDOW_SECONDS),
    ):
        self.due_window = due_window
        self._timestamps: list[datetime] = []
        self._delivered: set[datetime] = set()
        self.replace(instants)

    @property
    def schedule(self) -> tuple[ScheduledInstant, ...]:
        """Snapshot of the schedule, sorted ascending."""
        return tuple(
            ScheduledInstant(ts, ts in self._delivered) for ts in self._timestamps
        )

    @property
    def delivered(self) -> frozenset[datetime]:
        return frozenset(self._delivered)

    def __len__(self) -> int:
        return len(self._timestamps)

    def replace(self, instants: Iterable[ScheduledInstant]) -> None:
        """Swap in a new schedule, resetting dedup state to its own flags."""
        instants = list(instants)
        self._timestamps = sorted(i.timestamp for i in instants)
        self._delivered = {i.timestamp for i in instants if i.delivered}

    def clear(self) -> None:
        self._timestamps = []
        self._delivered = set()

    def is_delivered(self, timestamp: datetime) -> bool:
        return timestamp in self._delivered

    def is_due(self, instant: ScheduledInstant, now: datetime) -> bool:
        """True if scheduled, undelivered and now is within its due window."""
        if instant.timestamp not in self._timestamps:
            return False
        if instant.delivered or self.is_delivered(instant.timestamp):
            return False
        elapsed = now - instant.timestamp
        return timedelta(0) <= elapsed < self.due_window

    def is_expired(self, instant: ScheduledInstant, now: datetime) -> bool:
        """True if the due window has fully passed."""
        return now - instant.timestamp >= self.due_window

    def due(self, now: datetime) -> list[ScheduledInstant]:
        return [i for i in self.schedule if self.is_due(i, now)]

    def pending(self, now: datetime) -> list[ScheduledInstant]:
        """Undelivered instants that have not yet reached their timestamp."""
        return [i for i in self.schedule if not i.delivered and i.timestamp > now]

    def mark_delivered(self, timestamp: datetime) -> bool:
        """Mark an instant delivered (idempotent).

        Returns:
            True if the flag changed, False if already delivered or not scheduled
        """
        if timestamp not in self._timestamps or timestamp in self._delivered:
            return False
        self._delivered.add(timestamp)
        return True

    def drop_missed(self, now: datetime) -> list[ScheduledInstant]:
        """Remove undelivered instants whose due window has passed.

        Returns:
            The dropped instants
        """
        missed = [
            i for i in self.schedule
            if not i.delivered and self.is_expired(i, now)
        ]
        if missed:
            gone = {i.timestamp for i in missed}
            self._timestamps = [ts for ts in self._timestamps if ts not in gone]
        return missed

    def is_exhausted(self, now: datetime) -> bool:
        """True if every instant is delivered or past its due window.

        An empty schedule counts as exhausted.
        """
        return all(
            i.delivered or self.is_expired(i, now) for i in self.schedule
        )
