"""Posture reminder engine controller.

States:
- DISABLED: no schedule, nothing armed (initial)
- REQUESTING_PERMISSION: waiting on the permission gateway
- SCHEDULED: a live, possibly partially delivered schedule is armed

Transitions:
- DISABLED → REQUESTING_PERMISSION → SCHEDULED: enable() with permission granted
- REQUESTING_PERMISSION → DISABLED: permission denied
- SCHEDULED → SCHEDULED: exhausted schedule regenerated on tick, or reschedule()
- any → DISABLED: disable()

All mutations run under one asyncio lock, so ticks, native alarm callbacks
and user commands never interleave.
"""

import asyncio
import random
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from logger import logger
from . import config
from .dispatcher import (
    DeliveryStrategy,
    NativeSchedulingError,
    PollingStrategy,
    select_strategy,
)
from .events import EventSource, Unsubscribe
from .gateways import NativeAlarmScheduler, NotificationSurface, PermissionGateway
from .generator import generate_schedule
from .store import StateStore
from .tracker import DeliveryTracker
from .types import EngineState, EngineStatus, Permission, ScheduledInstant, Settings
from .window import ensure_aware, reference_timezone

Listener = Callable[[EngineState], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PostureEngine:
    """Schedules, tracks and delivers posture reminders.

    Usage:
        engine = PostureEngine(store, permissions, surface, native_scheduler)

        async with engine.session(ticks, foreground):
            await engine.enable()
            ...
    """

    def __init__(
        self,
        store: StateStore,
        permissions: PermissionGateway,
        surface: Optional[NotificationSurface],
        native_scheduler: Optional[NativeAlarmScheduler] = None,
        clock: Callable[[], datetime] = _utc_now,
        rng: Optional[random.Random] = None,
        tz: Optional[ZoneInfo] = None,
        count: int = config.REMINDERS_PER_DAY,
    ):
        """Initialize engine.

        Args:
            store: Persistence gateway
            permissions: Permission gateway
            surface: Notification surface, None when the host cannot notify
            native_scheduler: Native alarm capability, None for polling delivery
            clock: Returns the current aware instant
            rng: Randomness source for draws and messages
            tz: Reference timezone (default from config)
            count: Reminders per generated schedule
        """
        self.store = store
        self.permissions = permissions
        self.surface = surface
        self.clock = clock
        self.rng = rng or random.Random()
        self.tz = tz or reference_timezone()
        self.count = count

        self.is_supported = surface is not None
        self.degraded = False
        self._strategy: Optional[DeliveryStrategy] = (
            select_strategy(surface, native_scheduler, self.rng) if self.is_supported else None
        )

        self._settings = Settings()
        self._permission = Permission.NOT_REQUESTED
        self._status = EngineStatus.DISABLED
        self._tracker = DeliveryTracker(
            due_window=timedelta(seconds=config.DUE_WINDOW_SECONDS)
        )
        self._lock = asyncio.Lock()
        self._listeners: list[Listener] = []
        self._unsubscribers: list[Unsubscribe] = []

    # --- Observation ---

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def status(self) -> EngineStatus:
        return self._status

    @property
    def permission(self) -> Permission:
        return self._permission

    @property
    def strategy_name(self) -> Optional[str]:
        return self._strategy.name if self._strategy else None

    @property
    def state(self) -> EngineState:
        """Immutable snapshot for observers."""
        return EngineState(
            settings=self._settings,
            schedule=self._tracker.schedule,
            permission=self._permission,
            status=self._status,
            is_supported=self.is_supported,
            strategy=self.strategy_name,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call `listener` with a fresh snapshot after every change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        state = self.state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"Engine listener failed: {e}")

    def due_instants(self, now: Optional[datetime] = None) -> list[ScheduledInstant]:
        """Instants due right now. Always empty while disabled."""
        if not self._settings.enabled:
            return []
        return self._tracker.due(ensure_aware(now or self.clock()))

    # --- Lifecycle ---

    async def start(self, sources: tuple[EventSource, ...] = ()) -> None:
        """Load persisted state, re-arm delivery and subscribe to events."""
        async with self._lock:
            self._settings = await self.store.load_settings()
            self._tracker.replace(await self.store.load_schedule())

            if not self.is_supported:
                logger.warning("Notifications not supported on this host, engine disabled")
                self._status = EngineStatus.DISABLED
                self._notify()
                return

            self._permission = self.permissions.current()
            if self._settings.enabled:
                await self._resume()
            else:
                self._tracker.clear()
                self._status = EngineStatus.DISABLED

        for source in sources:
            self._unsubscribers.append(source.subscribe(self.tick))

        logger.info(
            f"Posture engine started: {self._status.value}, "
            f"{self.strategy_name} delivery, {len(self._tracker)} reminder(s) loaded"
        )
        await self.tick()
        self._notify()

    async def _resume(self) -> None:
        """Restore a persisted enabled state (lock held)."""
        if self._permission == Permission.NOT_REQUESTED:
            self._permission = await self._request_permission()

        if self._permission != Permission.GRANTED:
            logger.warning(f"Permission {self._permission.value} on startup, disabling reminders")
            await self._disable_locked()
            return

        now = self.clock()
        self._status = EngineStatus.SCHEDULED
        if self._drop_missed(now):
            await self.store.save_schedule(self._tracker.schedule)
        if self._tracker.is_exhausted(now):
            await self._regenerate(now)
        else:
            await self._arm(now)

    async def stop(self) -> None:
        """Unsubscribe from all event sources. Armed native alarms stay armed."""
        while self._unsubscribers:
            self._unsubscribers.pop()()
        logger.info("Posture engine stopped")

    @asynccontextmanager
    async def session(self, *sources: EventSource):
        """Start with the given event sources, stop on exit."""
        await self.start(sources)
        try:
            yield self
        finally:
            await self.stop()

    # --- Operations ---

    async def enable(self) -> bool:
        """Request permission and start scheduling.

        Returns:
            True if reminders are now scheduled
        """
        if not self.is_supported:
            return False

        async with self._lock:
            self._status = EngineStatus.REQUESTING_PERMISSION
            self._notify()

            self._permission = await self._request_permission()
            if self._permission != Permission.GRANTED:
                logger.warning(f"Reminder permission {self._permission.value}, staying disabled")
                self._status = EngineStatus.DISABLED
                self._notify()
                return False

            self._settings = Settings(True, self._settings.start_hour, self._settings.end_hour)
            await self._regenerate(self.clock())
            self._status = EngineStatus.SCHEDULED
            await self.store.save_settings(self._settings)

        logger.info("Posture reminders enabled")
        self._notify()
        return True

    async def disable(self) -> None:
        """Stop reminders and clear the schedule. Always succeeds."""
        if not self.is_supported:
            return

        async with self._lock:
            await self._disable_locked()

        logger.info("Posture reminders disabled")
        self._notify()

    async def _disable_locked(self) -> None:
        self._settings = Settings(False, self._settings.start_hour, self._settings.end_hour)
        try:
            await self._strategy.disarm()
        except NativeSchedulingError as e:
            logger.warning(f"Failed to cancel native alarms: {e}")
        self._tracker.clear()
        self._status = EngineStatus.DISABLED
        await self.store.save_settings(self._settings)
        await self.store.save_schedule(())

    async def update_settings(
        self,
        start_hour: Optional[float] = None,
        end_hour: Optional[float] = None,
    ) -> Settings:
        """Change the daily window. Applies from the next generated schedule.

        Raises:
            InvalidWindowError: If the resulting window is empty or out of range
        """
        if not self.is_supported:
            return self._settings

        async with self._lock:
            self._settings = Settings(
                self._settings.enabled,
                self._settings.start_hour if start_hour is None else start_hour,
                self._settings.end_hour if end_hour is None else end_hour,
            )
            await self.store.save_settings(self._settings)

        logger.info(f"Window set to {self._settings.start_hour}-{self._settings.end_hour}")
        self._notify()
        return self._settings

    async def reschedule(self) -> bool:
        """Replace the schedule now, regardless of exhaustion.

        Returns:
            True if a new schedule was generated
        """
        if not self.is_supported:
            return False

        async with self._lock:
            # Re-checked under the lock, a queued disable() may have run first
            if not self._settings.enabled or self._status != EngineStatus.SCHEDULED:
                return False
            await self._regenerate(self.clock())

        self._notify()
        return True

    async def test_fire(self) -> bool:
        """Send one reminder now, bypassing the schedule.

        Returns:
            True if a reminder was sent
        """
        if not self.is_supported or self._permission != Permission.GRANTED:
            return False

        try:
            await self._strategy.test_fire()
            return True
        except Exception as e:
            logger.error(f"Test reminder failed: {e}")
            return False

    async def tick(self) -> None:
        """Deliver due reminders and regenerate an exhausted schedule.

        Safe to call at any cadence: each call re-evaluates the whole
        schedule, and a second call without time passing changes nothing.
        """
        if not self.is_supported:
            return

        async with self._lock:
            if not self._settings.enabled or self._status != EngineStatus.SCHEDULED:
                return
            changed = await self._check(self.clock())

        if changed:
            self._notify()

    async def handle_native_delivery(self, timestamp: datetime) -> None:
        """Record an alarm fired by the native scheduler."""
        async with self._lock:
            if not self._settings.enabled:
                return
            changed = self._tracker.mark_delivered(timestamp)
            if changed:
                await self.store.save_schedule(self._tracker.schedule)
            changed = await self._check(self.clock()) or changed

        if changed:
            self._notify()

    # --- Internals (lock held) ---

    async def _check(self, now: datetime) -> bool:
        now = ensure_aware(now)
        delivered = await self._strategy.deliver_due(self._tracker, now)

        missed = self._drop_missed(now)

        if delivered or missed:
            await self.store.save_schedule(self._tracker.schedule)

        if self._tracker.is_exhausted(now):
            logger.info("Reminder schedule exhausted, generating next one")
            await self._regenerate(now)
            return True

        return bool(delivered or missed)

    def _drop_missed(self, now: datetime) -> list[ScheduledInstant]:
        missed = self._tracker.drop_missed(now)
        for instant in missed:
            logger.warning(f"Missed reminder due {instant.timestamp.isoformat()}")
        return missed

    async def _regenerate(self, now: datetime) -> None:
        schedule = generate_schedule(now, self._settings, self.rng, self.count, self.tz)
        self._tracker.replace(schedule)
        await self._arm(now)
        await self.store.save_schedule(self._tracker.schedule)
        times = ", ".join(i.timestamp.astimezone(self.tz).strftime("%a %H:%M") for i in schedule)
        logger.info(f"Scheduled {len(schedule)} reminder(s): {times}")

    async def _arm(self, now: datetime) -> None:
        pending = self._tracker.pending(now)
        try:
            await self._strategy.arm(pending)
        except NativeSchedulingError as e:
            logger.warning(f"Native scheduling failed, falling back to polling: {e}")
            try:
                await self._strategy.disarm()
            except NativeSchedulingError as cancel_error:
                logger.warning(f"Could not cancel partially armed alarms: {cancel_error}")
            self._strategy = PollingStrategy(self.surface, self.rng)
            self.degraded = True
            await self._strategy.arm(pending)

    async def _request_permission(self) -> Permission:
        try:
            return await self.permissions.request()
        except Exception as e:
            logger.error(f"Permission request failed: {e}")
            return Permission.DENIED
