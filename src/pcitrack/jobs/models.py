"""Run summaries returned by the lifecycle jobs.

Summaries are plain pydantic models so the HTTP layer and the CLI can emit
them as JSON with model_dump(mode="json").
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from pcitrack.models.document import DocumentStatus, DocumentType


class ScanDetail(BaseModel):
    """Outcome of the expiration scan for one document."""

    document_id: str
    merchant_name: str
    days_remaining: int
    notified: bool = False
    sent: int = 0
    failed: int = 0
    skipped_reason: str | None = None
    error: str | None = None


class ExpirationScanSummary(BaseModel):
    """Result of one expiration scan run."""

    run_id: str
    started_at: datetime
    total: int = 0
    notified: int = 0
    skipped: int = 0
    errors: int = 0
    details: list[ScanDetail] = Field(default_factory=list)


class ReconciliationDetail(BaseModel):
    """A document whose status changed, or that failed to reconcile."""

    document_id: str
    merchant_name: str
    old_status: DocumentStatus
    new_status: DocumentStatus
    notified: bool = False
    error: str | None = None


class ReconciliationSummary(BaseModel):
    """Result of one status reconciliation run."""

    run_id: str
    started_at: datetime
    total: int = 0
    updated: int = 0
    notified: int = 0
    errors: int = 0
    details: list[ReconciliationDetail] = Field(default_factory=list)


class UpcomingExpiration(BaseModel):
    """One row of the weekly report's upcoming-expirations list."""

    document_id: str
    merchant_name: str
    document_type: DocumentType
    expiration_date: datetime
    days_remaining: int
    status: DocumentStatus
    assigned_to_name: str | None = None


class DigestDelivery(BaseModel):
    """Delivery of the weekly digest to one administrator."""

    recipient: str
    sent: bool
    error: str | None = None


class WeeklyReport(BaseModel):
    """Result of one weekly report run."""

    run_id: str
    generated_at: datetime
    statistics: dict[str, int]
    upcoming_expirations: list[UpcomingExpiration] = Field(default_factory=list)
    deliveries: list[DigestDelivery] = Field(default_factory=list)
