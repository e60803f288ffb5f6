"""Scheduled lifecycle jobs: expiration scan, status reconciliation, weekly report."""

from pcitrack.jobs.context import JobContext, build_context, build_dispatcher, new_run_id
from pcitrack.jobs.expiration_scan import run_expiration_scan
from pcitrack.jobs.models import (
    DigestDelivery,
    ExpirationScanSummary,
    ReconciliationDetail,
    ReconciliationSummary,
    ScanDetail,
    UpcomingExpiration,
    WeeklyReport,
)
from pcitrack.jobs.reconciliation import reconcile_document, run_status_reconciliation
from pcitrack.jobs.weekly_report import run_weekly_report

__all__ = [
    "DigestDelivery",
    "ExpirationScanSummary",
    "JobContext",
    "ReconciliationDetail",
    "ReconciliationSummary",
    "ScanDetail",
    "UpcomingExpiration",
    "WeeklyReport",
    "build_context",
    "build_dispatcher",
    "new_run_id",
    "reconcile_document",
    "run_expiration_scan",
    "run_status_reconciliation",
    "run_weekly_report",
]
