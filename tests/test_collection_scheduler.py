"""
Tests for the collection scheduler.
"""

import asyncio
import threading
from datetime import datetime, timedelta, timezone

import pytest

from container_insights.models.core import CollectionResult
from container_insights.scheduling.scheduler import (
    APSchedulerTickSource,
    CollectionScheduler,
    SchedulerState
)
from container_insights.utils.errors import SchedulerRegistrationFailure
from container_insights.utils.structured_logging import correlation_id

FIRST_FIRE = datetime(2024, 1, 1, 12, 0, 1, tzinfo=timezone.utc)


class BlockingJob:
    """Job that blocks its executor thread until released."""

    def __init__(self):
        self.release = threading.Event()
        self.started = threading.Event()
        self.calls = 0
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.calls += 1
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        self.started.set()
        self.release.wait(timeout=5)
        with self._lock:
            self.active -= 1


@pytest.fixture
def scheduler(fake_tick_source, fake_clock):
    """Create a test scheduler driven by hand."""
    return CollectionScheduler(tick_source=fake_tick_source, clock=fake_clock)


class TestRegistration:
    """Test cases for job registration."""

    def test_initial_state(self, scheduler):
        assert scheduler.state == SchedulerState.IDLE
        assert scheduler.schedule is None

    def test_first_fire_is_next_whole_second(self, scheduler):
        first_fire = scheduler.register(lambda: None, 10)

        assert first_fire == FIRST_FIRE
        assert scheduler.schedule.next_fire_time == FIRST_FIRE
        assert scheduler.schedule.interval_seconds == 10
        assert scheduler.schedule.running is False
        assert scheduler.state == SchedulerState.WAITING

    def test_first_fire_never_immediate(self, fake_tick_source, fake_clock):
        fake_clock.now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        scheduler = CollectionScheduler(tick_source=fake_tick_source, clock=fake_clock)

        assert scheduler.register(lambda: None, 1) == FIRST_FIRE

    @pytest.mark.parametrize("interval", [0, -1, -30, 1.5, "10", None, True])
    def test_invalid_interval_rejected(self, scheduler, interval):
        with pytest.raises(SchedulerRegistrationFailure):
            scheduler.register(lambda: None, interval)
        assert scheduler.state == SchedulerState.IDLE

    def test_job_must_be_callable(self, scheduler):
        with pytest.raises(SchedulerRegistrationFailure, match="callable"):
            scheduler.register("not a job", 10)

    def test_single_job_only(self, scheduler):
        scheduler.register(lambda: None, 10, name="first")
        with pytest.raises(SchedulerRegistrationFailure, match="first"):
            scheduler.register(lambda: None, 10)

    @pytest.mark.asyncio
    async def test_start_without_job(self, scheduler):
        with pytest.raises(SchedulerRegistrationFailure):
            await scheduler.start()

    @pytest.mark.asyncio
    async def test_register_after_stop(self, scheduler):
        await scheduler.stop()
        with pytest.raises(SchedulerRegistrationFailure, match="stopped"):
            scheduler.register(lambda: None, 10)


class TestStart:

    @pytest.mark.asyncio
    async def test_start_arms_tick_source(self, scheduler, fake_tick_source):
        scheduler.register(lambda: None, 10)
        await scheduler.start()

        assert fake_tick_source.started is True
        assert fake_tick_source.first_fire == FIRST_FIRE
        assert fake_tick_source.interval_seconds == 10

    @pytest.mark.asyncio
    async def test_start_realigns_stale_first_fire(self, scheduler, fake_tick_source, fake_clock):
        scheduler.register(lambda: None, 10)
        fake_clock.advance(3)
        await scheduler.start()

        expected = datetime(2024, 1, 1, 12, 0, 4, tzinfo=timezone.utc)
        assert fake_tick_source.first_fire == expected
        assert scheduler.schedule.next_fire_time == expected

    @pytest.mark.asyncio
    async def test_tick_source_callback_dispatches(self, scheduler, fake_tick_source):
        calls = []
        scheduler.register(lambda: calls.append(1), 10)
        await scheduler.start()

        await fake_tick_source.callback()
        await scheduler.wait_idle()

        assert calls == [1]


class TestDispatch:
    """Test cases for tick handling."""

    @pytest.mark.asyncio
    async def test_next_fire_advances_by_interval(self, scheduler, fake_clock):
        scheduler.register(lambda: None, 10)

        fake_clock.now = FIRST_FIRE
        assert scheduler.dispatch_tick() is True
        await scheduler.wait_idle()
        assert scheduler.schedule.next_fire_time == FIRST_FIRE + timedelta(seconds=10)

        fake_clock.now = FIRST_FIRE + timedelta(seconds=10)
        assert scheduler.dispatch_tick() is True
        await scheduler.wait_idle()
        assert scheduler.schedule.next_fire_time == FIRST_FIRE + timedelta(seconds=20)

    @pytest.mark.asyncio
    async def test_cadence_is_fixed_rate(self, scheduler, fake_clock):
        def slow_job():
            fake_clock.advance(7)

        scheduler.register(slow_job, 10)
        fake_clock.now = FIRST_FIRE
        scheduler.dispatch_tick()
        await scheduler.wait_idle()

        # Job duration does not push the schedule back
        assert scheduler.schedule.next_fire_time == FIRST_FIRE + timedelta(seconds=10)

    @pytest.mark.asyncio
    async def test_overlapping_tick_is_skipped(self, scheduler, fake_clock):
        job = BlockingJob()
        scheduler.register(job, 1)

        fake_clock.now = FIRST_FIRE
        assert scheduler.dispatch_tick() is True
        await asyncio.get_running_loop().run_in_executor(None, job.started.wait, 5)
        assert scheduler.state == SchedulerState.RUNNING

        fake_clock.now = FIRST_FIRE + timedelta(seconds=1)
        assert scheduler.dispatch_tick() is False
        fake_clock.now = FIRST_FIRE + timedelta(seconds=2)
        assert scheduler.dispatch_tick() is False

        job.release.set()
        await scheduler.wait_idle()

        assert job.calls == 1
        assert job.max_active == 1
        assert scheduler.schedule.running is False
        assert scheduler.schedule.next_fire_time == FIRST_FIRE + timedelta(seconds=3)

        status = scheduler.get_status()
        assert status["ticks_fired"] == 3
        assert status["ticks_skipped"] == 2
        assert status["runs_completed"] == 1

    @pytest.mark.asyncio
    async def test_job_runs_again_after_skip(self, scheduler, fake_clock):
        job = BlockingJob()
        scheduler.register(job, 1)

        fake_clock.now = FIRST_FIRE
        scheduler.dispatch_tick()
        fake_clock.advance(1)
        scheduler.dispatch_tick()
        job.release.set()
        await scheduler.wait_idle()

        fake_clock.advance(1)
        assert scheduler.dispatch_tick() is True
        await scheduler.wait_idle()

        assert job.calls == 2
        assert job.max_active == 1

    @pytest.mark.asyncio
    async def test_missed_ticks_are_not_replayed(self, scheduler, fake_clock):
        calls = []
        scheduler.register(lambda: calls.append(1), 10)

        fake_clock.now = FIRST_FIRE + timedelta(seconds=35)
        scheduler.dispatch_tick()
        await scheduler.wait_idle()

        assert calls == [1]
        assert scheduler.schedule.next_fire_time == FIRST_FIRE + timedelta(seconds=40)
        assert scheduler.get_status()["ticks_skipped"] == 3

    @pytest.mark.asyncio
    async def test_failed_job_keeps_cadence(self, scheduler, fake_clock):
        def failing_job():
            raise RuntimeError("runtime exploded")

        scheduler.register(failing_job, 10)
        fake_clock.now = FIRST_FIRE
        scheduler.dispatch_tick()
        await scheduler.wait_idle()

        assert scheduler.schedule.running is False
        assert scheduler.schedule.next_fire_time == FIRST_FIRE + timedelta(seconds=10)
        assert scheduler.get_status()["runs_failed"] == 1

        fake_clock.advance(10)
        assert scheduler.dispatch_tick() is True
        await scheduler.wait_idle()
        assert scheduler.get_status()["runs_failed"] == 2

    @pytest.mark.asyncio
    async def test_unsuccessful_result_counts_as_failure(self, scheduler, fake_clock):
        def job():
            return CollectionResult(
                success=False,
                records_collected=0,
                errors=["runtime unavailable"],
                collection_time=fake_clock(),
                collector_type="container_count"
            )

        scheduler.register(job, 10)
        fake_clock.now = FIRST_FIRE
        scheduler.dispatch_tick()
        await scheduler.wait_idle()

        status = scheduler.get_status()
        assert status["runs_failed"] == 1
        assert status["runs_completed"] == 0
        assert status["last_success"] is None

    @pytest.mark.asyncio
    async def test_job_runs_with_tick_correlation_id(self, scheduler, fake_clock):
        seen = []
        scheduler.register(lambda: seen.append(correlation_id.get()), 10)

        fake_clock.now = FIRST_FIRE
        scheduler.dispatch_tick()
        await scheduler.wait_idle()
        fake_clock.advance(10)
        scheduler.dispatch_tick()
        await scheduler.wait_idle()

        assert seen == ["tick-1", "tick-2"]


class TestStop:
    """Test cases for shutdown."""

    @pytest.mark.asyncio
    async def test_stop_lets_running_job_finish(self, scheduler, fake_tick_source, fake_clock):
        job = BlockingJob()
        scheduler.register(job, 1)
        await scheduler.start()

        fake_clock.now = FIRST_FIRE
        scheduler.dispatch_tick()
        await asyncio.get_running_loop().run_in_executor(None, job.started.wait, 5)

        stop_task = asyncio.create_task(scheduler.stop())
        await asyncio.sleep(0.05)
        assert fake_tick_source.stopped is True
        assert not stop_task.done()

        job.release.set()
        await stop_task

        assert job.active == 0
        assert scheduler.state == SchedulerState.STOPPED
        assert scheduler.get_status()["runs_completed"] == 1

    @pytest.mark.asyncio
    async def test_no_dispatch_after_stop(self, scheduler, fake_clock):
        calls = []
        scheduler.register(lambda: calls.append(1), 1)
        await scheduler.stop()

        fake_clock.now = FIRST_FIRE
        assert scheduler.dispatch_tick() is False
        assert calls == []

    @pytest.mark.asyncio
    async def test_run_forever_returns_after_stop(self, scheduler):
        scheduler.register(lambda: None, 10)

        runner = asyncio.create_task(scheduler.run_forever())
        await asyncio.sleep(0.01)
        assert not runner.done()

        await scheduler.stop()
        await asyncio.wait_for(runner, timeout=1)

    @pytest.mark.asyncio
    async def test_request_stop_releases_run_forever_after_job(self, scheduler, fake_tick_source, fake_clock):
        job = BlockingJob()
        scheduler.register(job, 1)
        runner = asyncio.create_task(scheduler.run_forever())
        await asyncio.sleep(0.01)

        fake_clock.now = FIRST_FIRE
        scheduler.dispatch_tick()
        await asyncio.get_running_loop().run_in_executor(None, job.started.wait, 5)

        assert scheduler.request_stop() is True
        assert scheduler.request_stop() is False
        assert fake_tick_source.stopped is True
        await asyncio.sleep(0.05)
        assert not runner.done()

        job.release.set()
        await asyncio.wait_for(runner, timeout=5)
        assert scheduler.get_status()["runs_completed"] == 1


class TestAPSchedulerTickSource:
    """Test cases against the real APScheduler timer."""

    @pytest.mark.asyncio
    async def test_tick_source_schedules_first_fire(self):
        tick_source = APSchedulerTickSource()
        first_fire = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(seconds=30)

        async def callback():
            pass

        tick_source.start(callback, first_fire, 10)
        try:
            assert tick_source.next_run_time == first_fire
        finally:
            tick_source.stop()

        assert tick_source.next_run_time is None

    @pytest.mark.asyncio
    async def test_end_to_end_ticks(self):
        fired_at = []
        scheduler = CollectionScheduler()
        scheduler.register(lambda: fired_at.append(datetime.now(timezone.utc)), 1)

        await scheduler.start()
        await asyncio.sleep(2.5)
        await scheduler.stop()

        assert len(fired_at) >= 1
        for earlier, later in zip(fired_at, fired_at[1:]):
            assert (later - earlier).total_seconds() >= 0.9
