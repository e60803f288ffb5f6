"""Health check endpoint for the PCI Tracker API."""

from datetime import UTC, datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel

from pcitrack import __version__

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    time: str
    version: str
    scheduler_running: bool


@router.get("/health", response_model=HealthResponse)
def get_health(request: Request) -> HealthResponse:
    """Report liveness, server time, version and whether the scheduler loop runs."""
    scheduler = getattr(request.app.state, "scheduler", None)
    return HealthResponse(
        status="ok",
        time=datetime.now(UTC).isoformat(),
        version=__version__,
        scheduler_running=bool(scheduler is not None and scheduler.is_running),
    )
