"""PCI Tracker API error handling.

Every error response uses one envelope:

- code: machine-readable error code (e.g. "NOT_FOUND", "CONFLICT")
- message: human-readable message
- details: optional context, never stack traces or credentials
- request_id: correlation ID from RequestIdMiddleware

Global exception handlers:
- PciTrackError: domain errors, status from the error class
- HTTPException: FastAPI/Starlette HTTP exceptions (including unknown routes)
- RequestValidationError: Pydantic validation errors
- Exception: catch-all (fail closed, no internals exposed)
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from pcitrack.api.middleware.request_id import REQUEST_ID_HEADER
from pcitrack.errors import (
    ConflictError,
    DocumentValidationError,
    JobNotFoundError,
    NotFoundError,
    PciTrackError,
)

logger = logging.getLogger(__name__)

HTTP_STATUS_TO_CODE: dict[int, str] = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "UNPROCESSABLE_ENTITY",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


class ErrorResponse(BaseModel):
    """Error envelope schema."""

    code: str
    message: str
    details: dict[str, Any] | None = None
    request_id: str | None = None


def _get_request_id(request: Request) -> str:
    """request.state.request_id, else the header, else a fresh uuid4."""
    request_id: str | None = getattr(request.state, "request_id", None)
    if request_id is not None:
        return str(request_id)
    return request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())


def make_error_response(
    request: Request,
    *,
    code: str,
    message: str,
    http_status: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Build an error envelope response carrying the request ID."""
    request_id = _get_request_id(request)
    body = ErrorResponse(code=code, message=message, details=details, request_id=request_id)
    response = JSONResponse(status_code=http_status, content=body.model_dump())
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def _status_for(exc: PciTrackError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ConflictError):
        return 409
    if isinstance(exc, DocumentValidationError):
        return 400
    return 500


def _details_for(exc: PciTrackError) -> dict[str, Any] | None:
    if isinstance(exc, JobNotFoundError):
        return {"job": exc.job_name, "known_jobs": exc.known}
    if isinstance(exc, DocumentValidationError) and exc.field:
        return {"field": exc.field}
    if isinstance(exc, ConflictError):
        return {
            "document_id": exc.document_id,
            "expected_version": exc.expected_version,
            "actual_version": exc.actual_version,
        }
    return None


async def pcitrack_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map domain errors to the error envelope."""
    assert isinstance(exc, PciTrackError)

    http_status = _status_for(exc)
    if http_status >= 500:
        logger.error("Domain error on %s: %s", request.url.path, exc, exc_info=exc)
        message = "An internal error occurred"
    else:
        message = str(exc)

    return make_error_response(
        request,
        code=exc.code,
        message=message,
        http_status=http_status,
        details=_details_for(exc) if http_status < 500 else None,
    )


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map HTTPException to the error envelope."""
    assert isinstance(exc, StarletteHTTPException)

    return make_error_response(
        request,
        code=HTTP_STATUS_TO_CODE.get(exc.status_code, "ERROR"),
        message=str(exc.detail) if exc.detail else f"HTTP {exc.status_code}",
        http_status=exc.status_code,
    )


async def request_validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map request validation errors to the error envelope."""
    assert isinstance(exc, RequestValidationError)

    safe_details: list[dict[str, Any]] = []
    for error in exc.errors():
        loc = error.get("loc", ())
        safe_loc = [str(part) for part in loc if part not in ("body", "query", "path")]
        safe_details.append(
            {
                "field": ".".join(safe_loc) if safe_loc else "request",
                "message": error.get("msg", "Validation error"),
            }
        )

    return make_error_response(
        request,
        code="REQUEST_VALIDATION_FAILED",
        message="Request validation failed",
        http_status=422,
        details={"errors": safe_details} if safe_details else None,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all: 500 with a generic message, exception logged server-side."""
    logger.exception(
        "Unhandled exception: %s",
        type(exc).__name__,
        extra={"request_id": getattr(request.state, "request_id", None)},
    )

    return make_error_response(
        request,
        code="INTERNAL_ERROR",
        message="An internal error occurred",
        http_status=500,
    )
