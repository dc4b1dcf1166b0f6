"""Tests for APScheduler-backed native alarms and event sources."""

from unittest.mock import AsyncMock

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from posture.alarms import ApschedulerAlarmScheduler, alarm_job_id
from posture.events import ForegroundEventSource, IntervalEventSource

from conftest import FakeSurface, brt

T1 = brt(2026, 3, 10, 14, 3)
T2 = brt(2026, 3, 10, 18, 47)


class TestAlarmScheduler:
    """Alarm registration on an unstarted scheduler."""

    @pytest.mark.asyncio
    async def test_schedule_at_adds_date_job(self, surface):
        scheduler = AsyncIOScheduler()
        alarms = ApschedulerAlarmScheduler(scheduler, surface)

        await alarms.schedule_at(1, T1, "Title", "Body")

        job = scheduler.get_job(alarm_job_id(1))
        assert job is not None
        assert job.trigger.run_date == T1
        assert job.args[0] == 1

    @pytest.mark.asyncio
    async def test_cancel_removes_jobs_and_ignores_unknown(self, surface):
        scheduler = AsyncIOScheduler()
        alarms = ApschedulerAlarmScheduler(scheduler, surface)
        await alarms.schedule_at(1, T1, "Title", "Body")
        await alarms.schedule_at(2, T2, "Title", "Body")

        await alarms.cancel({1, 2, 7})

        assert scheduler.get_jobs() == []

    @pytest.mark.asyncio
    async def test_fire_presents_and_reports(self, surface):
        on_fired = AsyncMock()
        alarms = ApschedulerAlarmScheduler(AsyncIOScheduler(), surface, on_fired)

        await alarms._fire(1, T1, "Title", "Body")

        assert surface.fired == [("Title", "Body")]
        on_fired.assert_awaited_once_with(T1)

    @pytest.mark.asyncio
    async def test_fire_reports_even_when_surface_fails(self):
        on_fired = AsyncMock()
        alarms = ApschedulerAlarmScheduler(AsyncIOScheduler(), FakeSurface(fail=True), on_fired)

        await alarms._fire(1, T1, "Title", "Body")

        on_fired.assert_awaited_once_with(T1)


class TestIntervalEventSource:
    """Periodic tick registration."""

    def test_subscribe_adds_interval_job(self):
        scheduler = AsyncIOScheduler()
        source = IntervalEventSource(scheduler, seconds=30)

        source.subscribe(AsyncMock())

        job = scheduler.get_job("posture_tick")
        assert job is not None
        assert job.trigger.interval.total_seconds() == 30

    def test_unsubscribe_removes_job(self):
        scheduler = AsyncIOScheduler()
        unsubscribe = IntervalEventSource(scheduler).subscribe(AsyncMock())

        unsubscribe()
        unsubscribe()

        assert scheduler.get_jobs() == []

    def test_cadence_coarser_than_due_window_rejected(self):
        with pytest.raises(ValueError):
            IntervalEventSource(AsyncIOScheduler(), seconds=90)


class TestForegroundEventSource:
    """Host-pushed events."""

    @pytest.mark.asyncio
    async def test_emit_calls_subscribers(self):
        source = ForegroundEventSource()
        handler = AsyncMock()
        source.subscribe(handler)

        await source.emit()

        handler.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unsubscribed_handler_not_called(self):
        source = ForegroundEventSource()
        handler = AsyncMock()
        unsubscribe = source.subscribe(handler)

        unsubscribe()
        await source.emit()

        handler.assert_not_awaited()
        assert source.subscriber_count == 0
