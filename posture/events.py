"""Event sources that wake the engine.

The engine subscribes at start and calls the returned unsubscribe function
at stop, so nothing keeps ticking after teardown.
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from logger import logger
from . import config

Handler = Callable[[], Awaitable[None]]
Unsubscribe = Callable[[], None]


class EventSource(ABC):
    """Something that wakes the engine."""

    @abstractmethod
    def subscribe(self, handler: Handler) -> Unsubscribe:
        """Register a handler. Returns a function that removes it."""


class IntervalEventSource(EventSource):
    """Periodic ticks from an APScheduler interval job."""

    def __init__(
        self,
        scheduler: AsyncIOScheduler,
        seconds: int = config.POLL_INTERVAL_SECONDS,
        job_id: str = "posture_tick",
    ):
        if seconds > config.DUE_WINDOW_SECONDS:
            # A coarser cadence could step over a whole due window
            raise ValueError(
                f"Tick interval {seconds}s exceeds the {config.DUE_WINDOW_SECONDS}s due window"
            )
        self.scheduler = scheduler
        self.seconds = seconds
        self.job_id = job_id

    def subscribe(self, handler: Handler) -> Unsubscribe:
        self.scheduler.add_job(
            handler,
            trigger=IntervalTrigger(seconds=self.seconds),
            id=self.job_id,
            name="Posture reminder tick",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"Started posture ticks (every {self.seconds}s)")

        def unsubscribe() -> None:
            try:
                self.scheduler.remove_job(self.job_id)
                logger.info("Stopped posture ticks")
            except JobLookupError:
                pass

        return unsubscribe


class ForegroundEventSource(EventSource):
    """Host-pushed events such as regaining visibility or reconnecting."""

    def __init__(self, name: str = "foreground"):
        self.name = name
        self._handlers: list[Handler] = []

    def subscribe(self, handler: Handler) -> Unsubscribe:
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    async def emit(self) -> None:
        """Run every subscribed handler in order."""
        logger.debug(f"{self.name} event, {len(self._handlers)} handler(s)")
        for handler in list(self._handlers):
            await handler()
