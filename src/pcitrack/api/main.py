"""PCI Tracker FastAPI application factory.

This module provides the create_app() factory for the manual job trigger
surface and health endpoint. The scheduler polling loop runs inside the API
process when PCITRACK_SCHEDULER_ENABLED is set.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from pcitrack import __version__
from pcitrack.api.errors import (
    generic_exception_handler,
    http_exception_handler,
    pcitrack_error_handler,
    request_validation_error_handler,
)
from pcitrack.api.middleware.request_id import RequestIdMiddleware
from pcitrack.api.routes.health import router as health_router
from pcitrack.api.routes.jobs import router as jobs_router
from pcitrack.errors import PciTrackError
from pcitrack.jobs.context import JobContext, build_context
from pcitrack.observability.tracing import configure_tracing, instrument_fastapi, instrument_httpx
from pcitrack.scheduler.registry import JobScheduler, build_scheduler

logger = logging.getLogger(__name__)


def create_app(
    context: JobContext | None = None,
    scheduler: JobScheduler | None = None,
    start_scheduler: bool | None = None,
) -> FastAPI:
    """Create and configure the PCI Tracker FastAPI application.

    Args:
        context: Job context. If None, built from the environment.
        scheduler: Job scheduler. If None, the three lifecycle jobs are
            registered against context.
        start_scheduler: Start the polling loop on startup. If None, follows
            PCITRACK_SCHEDULER_ENABLED.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="PCI Tracker API",
        description="PCI-DSS compliance document lifecycle and notification jobs",
        version=__version__,
    )

    if scheduler is None:
        context = context or build_context()
        scheduler = build_scheduler(context)
    if start_scheduler is None:
        start_scheduler = context.settings.scheduler_enabled if context is not None else False

    app.state.context = context
    app.state.scheduler = scheduler

    configure_tracing()
    instrument_httpx()

    app.add_middleware(RequestIdMiddleware)

    instrument_fastapi(app)

    @app.on_event("startup")
    async def startup_event() -> None:
        """Start the scheduler loop when enabled."""
        if start_scheduler:
            await scheduler.start()
        else:
            logger.info("Scheduler loop disabled; jobs run only on manual trigger")

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        """Stop the scheduler loop."""
        await scheduler.stop()

    app.add_exception_handler(PciTrackError, pcitrack_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(health_router)
    app.include_router(jobs_router)

    return app
