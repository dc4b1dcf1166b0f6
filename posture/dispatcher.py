"""Delivery strategies.

Exactly one strategy is active per running engine:

- PollingStrategy: the engine wakes on ticks and fires due instants itself
- NativeStrategy: the engine hands future instants to an alarm scheduler
  that fires on its own; ticks only reconcile what already fired

The strategy is picked once at startup from the capabilities the host
provides (select_strategy).
"""

import random
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Optional, Sequence

from logger import logger
from . import config
from .gateways import NativeAlarmScheduler, NotificationSurface
from .tracker import DeliveryTracker
from .types import ScheduledInstant


class NativeSchedulingError(Exception):
    """The native alarm scheduler refused a cancel or register call."""


class DeliveryStrategy(ABC):
    """Common contract for both delivery substrates."""

    name = "base"

    def __init__(
        self,
        surface: NotificationSurface,
        rng: Optional[random.Random] = None,
        title: str = config.NOTIFICATION_TITLE,
        messages: Sequence[str] = config.MESSAGES,
    ):
        self.surface = surface
        self.rng = rng or random
        self.title = title
        self.messages = list(messages)

    def pick_message(self) -> str:
        return self.rng.choice(self.messages)

    @abstractmethod
    async def arm(self, instants: Sequence[ScheduledInstant]) -> None:
        """Prepare delivery of the given future instants."""

    @abstractmethod
    async def disarm(self) -> None:
        """Stop any pending delivery."""

    @abstractmethod
    async def deliver_due(self, tracker: DeliveryTracker, now: datetime) -> list[ScheduledInstant]:
        """Handle instants that are due at `now`.

        Returns:
            Instants newly marked delivered
        """

    async def test_fire(self) -> None:
        """Deliver one reminder immediately, outside the schedule."""
        await self.surface.fire_now(self.title, self.pick_message())
        logger.info(f"Test reminder sent ({self.name})")


class PollingStrategy(DeliveryStrategy):
    """Fires due instants from engine ticks."""

    name = "polling"

    async def arm(self, instants: Sequence[ScheduledInstant]) -> None:
        logger.debug(f"Polling delivery armed for {len(instants)} reminder(s)")

    async def disarm(self) -> None:
        logger.debug("Polling delivery disarmed")

    async def deliver_due(self, tracker: DeliveryTracker, now: datetime) -> list[ScheduledInstant]:
        delivered = []
        for instant in tracker.due(now):
            try:
                await self.surface.fire_now(self.title, self.pick_message())
                logger.info(f"Delivered reminder due {instant.timestamp.isoformat()}")
            except Exception as e:
                logger.error(f"Failed to deliver reminder {instant.timestamp.isoformat()}: {e}")
            finally:
                # Marked even on failure, a reminder is never re-fired
                tracker.mark_delivered(instant.timestamp)
                delivered.append(instant)
        return delivered


class NativeStrategy(DeliveryStrategy):
    """Hands the schedule to a native alarm scheduler."""

    name = "native"

    def __init__(
        self,
        surface: NotificationSurface,
        scheduler: NativeAlarmScheduler,
        rng: Optional[random.Random] = None,
        alarm_ids: Sequence[int] = config.NATIVE_ALARM_IDS,
        grace: timedelta = timedelta(seconds=config.DUE_WINDOW_SECONDS),
        **kwargs,
    ):
        """Initialize native strategy.

        Args:
            surface: Surface used for test reminders
            scheduler: Native alarm scheduler
            rng: Randomness source for message selection
            alarm_ids: Stable alarm IDs, one per scheduled instant
            grace: Time after an instant's timestamp before it is assumed fired
        """
        super().__init__(surface, rng, **kwargs)
        self.scheduler = scheduler
        self.alarm_ids = tuple(alarm_ids)
        self.grace = grace
        # Timestamps registered with the scheduler by this process
        self._armed: set[datetime] = set()

    async def arm(self, instants: Sequence[ScheduledInstant]) -> None:
        if len(instants) > len(self.alarm_ids):
            raise NativeSchedulingError(
                f"{len(instants)} reminders but only {len(self.alarm_ids)} alarm IDs"
            )

        # Cancel first so a regenerated schedule never overlaps stale alarms
        await self.disarm()

        try:
            for alarm_id, instant in zip(self.alarm_ids, instants):
                await self.scheduler.schedule_at(
                    alarm_id, instant.timestamp, self.title, self.pick_message()
                )
                self._armed.add(instant.timestamp)
        except Exception as e:
            raise NativeSchedulingError(f"Failed to register alarms: {e}") from e

        logger.info(f"Native delivery armed for {len(instants)} reminder(s)")

    async def disarm(self) -> None:
        try:
            await self.scheduler.cancel(self.alarm_ids)
        except Exception as e:
            raise NativeSchedulingError(f"Failed to cancel alarms: {e}") from e
        self._armed.clear()

    async def deliver_due(self, tracker: DeliveryTracker, now: datetime) -> list[ScheduledInstant]:
        """Mark armed instants past the grace period as fired.

        Instants this process never armed (alarms lost across a restart) are
        left for the tracker to drop as missed.
        """
        reconciled = []
        for instant in tracker.schedule:
            if instant.timestamp not in self._armed or instant.delivered:
                continue
            if now - instant.timestamp >= self.grace:
                tracker.mark_delivered(instant.timestamp)
                reconciled.append(instant)
        if reconciled:
            logger.debug(f"Reconciled {len(reconciled)} natively fired reminder(s)")
        return reconciled


def select_strategy(
    surface: NotificationSurface,
    native_scheduler: Optional[NativeAlarmScheduler] = None,
    rng: Optional[random.Random] = None,
) -> DeliveryStrategy:
    """Pick the delivery strategy from the host's capabilities."""
    if native_scheduler is not None:
        return NativeStrategy(surface, native_scheduler, rng)
    return PollingStrategy(surface, rng)
