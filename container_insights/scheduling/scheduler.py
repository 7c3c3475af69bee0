"""
Fixed-cadence scheduler driving a single collection job.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from container_insights.config.models import SchedulerConfig
from container_insights.utils.errors import SchedulerRegistrationFailure
from container_insights.utils.structured_logging import correlation_id

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Awaitable[None]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SchedulerState(Enum):
    """Scheduler state enumeration."""
    IDLE = "idle"
    WAITING = "waiting"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class ScheduleState:
    """Cadence bookkeeping for the registered job."""
    interval_seconds: int
    next_fire_time: datetime
    running: bool = False


class TickSource(ABC):
    """
    Timer primitive that fires a callback on a fixed cadence.

    Implementations must invoke the callback on the event loop that called
    ``start()`` and must not queue up ticks while a callback is pending.
    """

    @abstractmethod
    def start(self, callback: TickCallback, first_fire: datetime, interval_seconds: int) -> None:
        pass

    @abstractmethod
    def stop(self) -> None:
        pass


class APSchedulerTickSource(TickSource):
    """
    Tick source backed by APScheduler's ``IntervalTrigger``.

    The callback is a coroutine, so APScheduler runs it as a task on the
    event loop. Late ticks are coalesced instead of replayed.
    """

    JOB_ID = "collection_tick"

    def __init__(self, timezone: str = "UTC", misfire_grace_time: int = 1):
        self.timezone = timezone
        self.misfire_grace_time = misfire_grace_time
        self._scheduler: Optional[AsyncIOScheduler] = None

    def start(self, callback: TickCallback, first_fire: datetime, interval_seconds: int) -> None:
        self._scheduler = AsyncIOScheduler(
            timezone=self.timezone,
            event_loop=asyncio.get_running_loop()
        )
        self._scheduler.add_job(
            func=callback,
            trigger=IntervalTrigger(
                seconds=interval_seconds,
                start_date=first_fire,
                timezone=self.timezone
            ),
            id=self.JOB_ID,
            name="Collection tick",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.misfire_grace_time
        )
        self._scheduler.start()
        logger.debug(f"APScheduler tick source armed, first fire at {first_fire.isoformat()}")

    def stop(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None

    @property
    def next_run_time(self) -> Optional[datetime]:
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(self.JOB_ID)
        return job.next_run_time if job else None


class CollectionScheduler:
    """
    Runs one job on a fixed cadence with at most one execution in flight.

    Ticks follow a fixed-rate schedule: ``next_fire_time`` moves forward by
    the interval on every tick no matter how long the job took. A tick that
    arrives while the previous execution is still running is dropped, not
    queued. The job itself runs in the default executor so the event loop
    stays free to receive ticks and shutdown signals.
    """

    def __init__(
        self,
        tick_source: Optional[TickSource] = None,
        clock: Callable[[], datetime] = utc_now,
        config: Optional[SchedulerConfig] = None
    ):
        """
        Args:
            tick_source: Timer primitive, APScheduler-backed by default
            clock: Source of the current instant
            config: Scheduler settings used to build the default tick source
        """
        self.config = config or SchedulerConfig()
        self.tick_source = tick_source or APSchedulerTickSource(
            timezone=self.config.timezone,
            misfire_grace_time=self.config.misfire_grace_time
        )
        self.clock = clock

        self._job: Optional[Callable[[], Any]] = None
        self._job_name: Optional[str] = None
        self._schedule: Optional[ScheduleState] = None
        self._started = False
        self._stopped = False
        self._stop_event = asyncio.Event()
        self._current_task: Optional[asyncio.Task] = None

        self._ticks_fired = 0
        self._ticks_skipped = 0
        self._runs_completed = 0
        self._runs_failed = 0
        self._last_run: Optional[datetime] = None
        self._last_success: Optional[datetime] = None

    @property
    def state(self) -> SchedulerState:
        if self._stopped:
            return SchedulerState.STOPPED
        if self._schedule is None:
            return SchedulerState.IDLE
        if self._schedule.running:
            return SchedulerState.RUNNING
        return SchedulerState.WAITING

    @property
    def schedule(self) -> Optional[ScheduleState]:
        return self._schedule

    def register(self, job: Callable[[], Any], interval_seconds: int, name: Optional[str] = None) -> datetime:
        """
        Register the job and compute its first fire time.

        The first tick is the next whole second after now, never immediately.

        Args:
            job: Zero-argument callable run on every eligible tick
            interval_seconds: Cadence in seconds, must be a positive integer
            name: Label used in logs

        Returns:
            The first fire time

        Raises:
            SchedulerRegistrationFailure: On an invalid interval, a second job,
                or registration after stop
        """
        if isinstance(interval_seconds, bool) or not isinstance(interval_seconds, int) or interval_seconds <= 0:
            raise SchedulerRegistrationFailure(
                f"Interval must be a positive integer number of seconds: {interval_seconds!r}",
                operation="register"
            )
        if not callable(job):
            raise SchedulerRegistrationFailure("Job must be callable", operation="register")
        if self._stopped:
            raise SchedulerRegistrationFailure("Scheduler is stopped", operation="register")
        if self._schedule is not None:
            raise SchedulerRegistrationFailure(
                f"A job is already registered: {self._job_name}",
                operation="register"
            )

        self._job = job
        self._job_name = name or getattr(job, "__name__", repr(job))
        self._schedule = ScheduleState(
            interval_seconds=interval_seconds,
            next_fire_time=self._next_tick_boundary(self.clock())
        )

        logger.info(
            f"Registered job {self._job_name} every {interval_seconds}s, "
            f"first tick at {self._schedule.next_fire_time.isoformat()}"
        )
        return self._schedule.next_fire_time

    @staticmethod
    def _next_tick_boundary(now: datetime) -> datetime:
        return now.replace(microsecond=0) + timedelta(seconds=1)

    async def start(self) -> None:
        """
        Arm the tick source.

        Raises:
            SchedulerRegistrationFailure: If no job is registered
        """
        if self._schedule is None:
            raise SchedulerRegistrationFailure("No job registered", operation="start")
        if self._stopped:
            raise SchedulerRegistrationFailure("Scheduler is stopped", operation="start")
        if self._started:
            logger.warning(f"Scheduler already started, state: {self.state.value}")
            return

        now = self.clock()
        if self._schedule.next_fire_time <= now:
            self._schedule.next_fire_time = self._next_tick_boundary(now)

        self.tick_source.start(
            self._on_tick,
            self._schedule.next_fire_time,
            self._schedule.interval_seconds
        )
        self._started = True
        logger.info(f"Scheduler started for job {self._job_name}")

    async def _on_tick(self) -> None:
        self.dispatch_tick()

    def dispatch_tick(self) -> bool:
        """
        Handle one timer firing. Must be called on the event loop thread.

        The running flag is checked and set with no suspension point in
        between, so two ticks can never both observe an idle job.

        Returns:
            True if the job was launched, False if the tick was dropped
        """
        if self._stopped or self._schedule is None:
            return False

        self._ticks_fired += 1
        tick = self._ticks_fired
        self._advance(self.clock())

        if self._schedule.running:
            self._ticks_skipped += 1
            logger.warning(
                f"Tick {tick} skipped: {self._job_name} still running, "
                f"next tick at {self._schedule.next_fire_time.isoformat()}"
            )
            return False

        self._schedule.running = True
        self._current_task = asyncio.get_running_loop().create_task(self._run_job(tick))
        return True

    def _advance(self, now: datetime) -> None:
        """Move next_fire_time one interval on, then past any ticks the timer coalesced."""
        interval = timedelta(seconds=self._schedule.interval_seconds)
        next_fire_time = self._schedule.next_fire_time + interval
        missed = 0
        while next_fire_time <= now:
            next_fire_time += interval
            missed += 1

        if missed:
            self._ticks_skipped += missed
            logger.warning(f"{missed} tick(s) missed while the event loop was busy")

        self._schedule.next_fire_time = next_fire_time

    async def _run_job(self, tick: int) -> None:
        started = self.clock()
        self._last_run = started
        loop = asyncio.get_running_loop()

        try:
            result = await loop.run_in_executor(None, self._execute_job, tick)
        except Exception as e:
            self._runs_failed += 1
            logger.exception(f"Job {self._job_name} raised on tick {tick}: {e}")
        else:
            if getattr(result, "success", True):
                self._runs_completed += 1
                self._last_success = started
            else:
                self._runs_failed += 1
            elapsed = (self.clock() - started).total_seconds()
            logger.debug(f"Tick {tick} finished in {elapsed:.3f}s")
        finally:
            self._schedule.running = False

    def _execute_job(self, tick: int) -> Any:
        token = correlation_id.set(f"tick-{tick}")
        try:
            return self._job()
        finally:
            correlation_id.reset(token)

    async def wait_idle(self) -> None:
        """Wait for the in-flight execution, if any, to finish."""
        task = self._current_task
        if task is not None and not task.done():
            await asyncio.shield(task)

    def request_stop(self) -> bool:
        """
        Stop ticking without waiting for the in-flight job.

        Safe to call from a signal handler. ``run_forever`` returns once
        the running job, if any, has finished.

        Returns:
            False if the scheduler was already stopped
        """
        if self._stopped:
            return False

        self._stopped = True
        self.tick_source.stop()
        self._stop_event.set()
        logger.info("Scheduler stopping")
        return True

    async def stop(self, wait: bool = True) -> None:
        """
        Stop ticking. A job already running is allowed to finish.

        Args:
            wait: Whether to wait for the in-flight execution
        """
        if not self.request_stop():
            return

        if wait:
            await self.wait_idle()

        logger.info("Scheduler stopped")

    async def run_forever(self) -> None:
        """Start (if needed) and block until ``stop()`` is called."""
        if not self._started:
            await self.start()
        await self._stop_event.wait()
        await self.wait_idle()

    def get_status(self) -> Dict[str, Any]:
        """
        Get scheduler status.

        Returns:
            Dictionary with cadence and execution counters
        """
        schedule = self._schedule
        return {
            "state": self.state.value,
            "job": self._job_name,
            "interval_seconds": schedule.interval_seconds if schedule else None,
            "next_fire_time": schedule.next_fire_time.isoformat() if schedule else None,
            "running": schedule.running if schedule else False,
            "ticks_fired": self._ticks_fired,
            "ticks_skipped": self._ticks_skipped,
            "runs_completed": self._runs_completed,
            "runs_failed": self._runs_failed,
            "last_run": self._last_run.isoformat() if self._last_run else None,
            "last_success": self._last_success.isoformat() if self._last_success else None,
        }
