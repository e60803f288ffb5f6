"""Job scheduler: a registry of named, cron-scheduled async jobs.

The scheduler is an explicit object owned by whoever starts it (the API
lifespan, the CLI, a test). It polls the clock every tick_seconds and fires
each job whose cron expression matches the current minute, at most once per
minute.

A job never runs concurrently with itself. Each job carries an asyncio.Lock:
a scheduled firing that finds the job running is skipped, a manual run()
waits for the running instance to finish. Different jobs run concurrently.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Final

from pcitrack.errors import JobNotFoundError
from pcitrack.jobs.expiration_scan import JOB_NAME as EXPIRATION_SCAN
from pcitrack.jobs.expiration_scan import run_expiration_scan
from pcitrack.jobs.reconciliation import JOB_NAME as STATUS_RECONCILIATION
from pcitrack.jobs.reconciliation import run_status_reconciliation
from pcitrack.jobs.weekly_report import JOB_NAME as WEEKLY_REPORT
from pcitrack.jobs.weekly_report import run_weekly_report
from pcitrack.observability.tracing import job_span
from pcitrack.scheduler.cron import CronSchedule

if TYPE_CHECKING:
    from pcitrack.jobs.context import JobContext

logger = logging.getLogger(__name__)

DEFAULT_TICK_SECONDS: Final[float] = 30.0

JobRunner = Callable[[], Awaitable[Any]]


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class ScheduledJob:
    """A registered job and its run state."""

    name: str
    schedule: CronSchedule
    runner: JobRunner
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_started_at: datetime | None = None
    last_finished_at: datetime | None = None
    last_error: str | None = None
    last_fired_minute: datetime | None = None

    @property
    def running(self) -> bool:
        return self.lock.locked()

    def describe(self) -> dict[str, Any]:
        """JSON-friendly view for listings."""
        return {
            "name": self.name,
            "schedule": self.schedule.expression,
            "running": self.running,
            "last_started_at": self.last_started_at.isoformat() if self.last_started_at else None,
            "last_finished_at": (
                self.last_finished_at.isoformat() if self.last_finished_at else None
            ),
            "last_error": self.last_error,
        }


class JobScheduler:
    """Registry and polling loop for scheduled jobs."""

    def __init__(
        self,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize scheduler.

        Args:
            tick_seconds: Seconds between clock polls.
            clock: Returns the current instant.
        """
        self._tick_seconds = tick_seconds
        self._clock = clock
        self._jobs: dict[str, ScheduledJob] = {}
        self._running = False
        self._task: asyncio.Task | None = None
        self._in_flight: set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self._running

    def now(self) -> datetime:
        """Current instant from the scheduler clock."""
        return self._clock()

    def register(self, name: str, schedule: str | CronSchedule, runner: JobRunner) -> ScheduledJob:
        """Register a job under a unique name.

        Args:
            name: Job name used by run() and the trigger surfaces.
            schedule: Cron expression or parsed schedule.
            runner: Zero-argument coroutine function running the job.

        Raises:
            ValueError: If the name is already registered.
            CronError: If the cron expression is malformed.
        """
        if name in self._jobs:
            raise ValueError(f"Job already registered: {name}")
        parsed = schedule if isinstance(schedule, CronSchedule) else CronSchedule.parse(schedule)
        job = ScheduledJob(name=name, schedule=parsed, runner=runner)
        self._jobs[name] = job
        logger.info("Registered job %s (%s)", name, parsed.expression)
        return job

    def names(self) -> list[str]:
        """Registered job names, in registration order."""
        return list(self._jobs)

    def jobs(self) -> list[ScheduledJob]:
        """Registered jobs, in registration order."""
        return list(self._jobs.values())

    def get(self, name: str) -> ScheduledJob:
        """Look up a job.

        Raises:
            JobNotFoundError: If no job has that name.
        """
        job = self._jobs.get(name)
        if job is None:
            raise JobNotFoundError(name, known=self.names())
        return job

    async def run(self, name: str) -> Any:
        """Run a job now and return its summary.

        Waits for an in-progress run of the same job to finish first.

        Raises:
            JobNotFoundError: If no job has that name.
        """
        job = self.get(name)
        if job.running:
            logger.info("Manual run of %s waiting for the running instance", name)
        async with job.lock:
            try:
                return await self._execute(job, trigger="manual")
            except Exception as e:
                logger.error("Manual run of %s failed: %s", name, e, exc_info=True)
                raise

    def tick(self, now: datetime | None = None) -> list[asyncio.Task]:
        """Fire every job due at now's minute.

        Must be called from a running event loop.

        Returns:
            Tasks started for the due jobs.
        """
        now = now or self._clock()
        minute = now.replace(second=0, microsecond=0)
        started: list[asyncio.Task] = []

        for job in self._jobs.values():
            if job.last_fired_minute == minute or not job.schedule.matches(minute):
                continue
            job.last_fired_minute = minute
            task = asyncio.create_task(self._run_scheduled(job), name=f"job:{job.name}")
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
            started.append(task)

        return started

    async def start(self) -> None:
        """Start the polling loop."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info("Job scheduler started with %d jobs", len(self._jobs))

    async def stop(self) -> None:
        """Stop the polling loop and cancel in-flight scheduled runs."""
        if not self._running:
            return

        self._running = False
        tasks = [t for t in (self._task, *self._in_flight) if t is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._task = None
        logger.info("Job scheduler stopped")

    async def _poll_loop(self) -> None:
        """Main polling loop."""
        while self._running:
            try:
                self.tick()
            except Exception as e:
                logger.error("Error in scheduler tick: %s", e, exc_info=True)

            await asyncio.sleep(self._tick_seconds)

    async def _run_scheduled(self, job: ScheduledJob) -> None:
        """Scheduled firing: skipped when the job is already running."""
        if job.running:
            logger.warning(
                "Skipping scheduled run of %s: previous run still in progress", job.name
            )
            return

        async with job.lock:
            try:
                await self._execute(job, trigger="schedule")
            except Exception as e:
                logger.error(
                    "Scheduled run of %s failed, next firing retries: %s",
                    job.name,
                    e,
                    exc_info=True,
                )

    async def _execute(self, job: ScheduledJob, trigger: str) -> Any:
        """Run a job under its lock, tracking run state."""
        job.last_started_at = self._clock()
        start = time.monotonic()
        logger.info("Job %s started (%s)", job.name, trigger)

        try:
            with job_span(job.name, trigger):
                result = await job.runner()
        except Exception as e:
            job.last_error = f"{type(e).__name__}: {e}"
            raise
        finally:
            job.last_finished_at = self._clock()

        job.last_error = None
        logger.info(
            "Job %s finished (%s) in %dms",
            job.name,
            trigger,
            int((time.monotonic() - start) * 1000),
        )
        return result


def build_scheduler(
    context: JobContext,
    tick_seconds: float = DEFAULT_TICK_SECONDS,
) -> JobScheduler:
    """Scheduler with the three lifecycle jobs bound to context, on its clock."""
    settings = context.settings
    scheduler = JobScheduler(tick_seconds=tick_seconds, clock=context.clock)
    scheduler.register(
        EXPIRATION_SCAN,
        settings.cron_expiration_scan,
        functools.partial(run_expiration_scan, context),
    )
    scheduler.register(
        STATUS_RECONCILIATION,
        settings.cron_reconciliation,
        functools.partial(run_status_reconciliation, context),
    )
    scheduler.register(
        WEEKLY_REPORT,
        settings.cron_weekly_report,
        functools.partial(run_weekly_report, context),
    )
    return scheduler
