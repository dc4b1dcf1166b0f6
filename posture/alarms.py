"""Native alarm scheduling with APScheduler date triggers.

Each alarm is one DateTrigger job keyed by a stable ID, so re-registering an
ID replaces the previous alarm instead of stacking duplicates.
"""

from datetime import datetime
from typing import Awaitable, Callable, Iterable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from logger import logger
from . import config
from .gateways import NativeAlarmScheduler, NotificationSurface

JOB_PREFIX = "posture_alarm_"

FiredCallback = Callable[[datetime], Awaitable[None]]


def alarm_job_id(alarm_id: int) -> str:
    return f"{JOB_PREFIX}{alarm_id}"


class ApschedulerAlarmScheduler(NativeAlarmScheduler):
    """Alarm scheduler backed by the host's AsyncIOScheduler."""

    def __init__(
        self,
        scheduler: AsyncIOScheduler,
        surface: NotificationSurface,
        on_fired: Optional[FiredCallback] = None,
    ):
        """Initialize alarm scheduler.

        Args:
            scheduler: APScheduler instance shared with the host
            surface: Where alarms are presented when they fire
            on_fired: Async callback receiving the fired instant
        """
        self.scheduler = scheduler
        self.surface = surface
        self.on_fired = on_fired

    async def cancel(self, ids: Iterable[int]) -> None:
        for alarm_id in ids:
            try:
                self.scheduler.remove_job(alarm_job_id(alarm_id))
                logger.debug(f"Cancelled alarm {alarm_id}")
            except JobLookupError:
                pass

    async def schedule_at(self, alarm_id: int, instant: datetime, title: str, body: str) -> None:
        self.scheduler.add_job(
            self._fire,
            trigger=DateTrigger(run_date=instant),
            args=[alarm_id, instant, title, body],
            id=alarm_job_id(alarm_id),
            name=f"posture:{alarm_id}",
            replace_existing=True,
            misfire_grace_time=config.DUE_WINDOW_SECONDS,
        )
        logger.info(f"Armed alarm {alarm_id} at {instant.isoformat()}")

    async def _fire(self, alarm_id: int, instant: datetime, title: str, body: str) -> None:
        """Present the alarm, then report it back to the engine."""
        try:
            await self.surface.fire_now(title, body)
            logger.info(f"Fired alarm {alarm_id} scheduled for {instant.isoformat()}")
        except Exception as e:
            logger.error(f"Failed to fire alarm {alarm_id}: {e}")
        finally:
            if self.on_fired is not None:
                await self.on_fired(instant)
