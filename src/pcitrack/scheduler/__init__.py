"""Cron scheduling of the lifecycle jobs."""

from pcitrack.scheduler.cron import CronError, CronSchedule
from pcitrack.scheduler.registry import JobScheduler, ScheduledJob, build_scheduler

__all__ = [
    "CronError",
    "CronSchedule",
    "JobScheduler",
    "ScheduledJob",
    "build_scheduler",
]
