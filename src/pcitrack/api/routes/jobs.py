"""Job routes: list registered jobs and trigger one manually.

GET  /v1/jobs              -> registered jobs with schedule and run state
POST /v1/jobs/{name}/run   -> run the job now, respond with its summary

A manual run waits for an in-progress run of the same job, then runs it.
Unknown names produce 404 NOT_FOUND through the error handlers.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from pcitrack.scheduler.registry import JobScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["Jobs"])


class JobInfo(BaseModel):
    """One registered job."""

    name: str
    schedule: str
    running: bool
    next_run_at: str | None = None
    last_started_at: str | None = None
    last_finished_at: str | None = None
    last_error: str | None = None


class JobList(BaseModel):
    """Response for GET /v1/jobs."""

    items: list[JobInfo] = Field(default_factory=list)


def _get_scheduler(request: Request) -> JobScheduler:
    scheduler: JobScheduler = request.app.state.scheduler
    return scheduler


@router.get("/jobs", response_model=JobList)
def list_jobs(request: Request) -> JobList:
    """List registered jobs in registration order."""
    scheduler = _get_scheduler(request)
    now = scheduler.now()
    return JobList(
        items=[
            JobInfo(**job.describe(), next_run_at=job.schedule.next_after(now).isoformat())
            for job in scheduler.jobs()
        ]
    )


@router.post("/jobs/{name}/run")
async def run_job(name: str, request: Request) -> Any:
    """Run a job now and return its summary.

    Raises:
        JobNotFoundError: 404 when no job has that name.
    """
    scheduler = _get_scheduler(request)
    logger.info(
        "Manual run of %s requested (request_id=%s)",
        name,
        getattr(request.state, "request_id", None),
    )
    result = await scheduler.run(name)
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json")
    return result
