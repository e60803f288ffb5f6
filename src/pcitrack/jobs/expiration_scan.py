"""Expiration scan job.

Finds documents expiring within the notify window and alerts their
stakeholders, at most once per cooldown period. Each document is handled in
isolation: a failure on one is recorded in its detail entry and the scan
moves on.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Final

from pcitrack.jobs.context import new_run_id
from pcitrack.jobs.models import ExpirationScanSummary, ScanDetail
from pcitrack.lifecycle.status import days_remaining
from pcitrack.models.document import DocumentStatus
from pcitrack.persistence.documents import DocumentQuery

if TYPE_CHECKING:
    from pcitrack.jobs.context import JobContext

logger = logging.getLogger(__name__)

JOB_NAME: Final[str] = "expiration_scan"

ALL_DELIVERIES_FAILED: Final[str] = "all deliveries failed"


async def run_expiration_scan(context: JobContext) -> ExpirationScanSummary:
    """Alert on every non-expired document expiring within the notify window.

    Args:
        context: Job collaborators and settings.

    Returns:
        ExpirationScanSummary with one detail entry per candidate document.

    Raises:
        Exception: Only when the candidate query itself fails; per-document
            errors are captured in the summary.
    """
    now = context.now()
    run_id = new_run_id(JOB_NAME)
    window_end = now + timedelta(days=context.settings.notify_window_days)

    candidates = context.store.find(
        DocumentQuery(
            exclude_statuses=frozenset({DocumentStatus.EXPIRED}),
            expires_from=now,
            expires_to=window_end,
        )
    )
    logger.info("Expiration scan %s: %d candidate documents", run_id, len(candidates))

    notifier = context.notifier()
    summary = ExpirationScanSummary(run_id=run_id, started_at=now, total=len(candidates))

    for document in candidates:
        remaining = days_remaining(document.expiration_date, now)
        detail = ScanDetail(
            document_id=document.document_id,
            merchant_name=document.merchant_name,
            days_remaining=remaining,
        )

        try:
            outcome = await notifier.notify_expiration(
                document.document_id, remaining, now=now, holder=run_id
            )
        except Exception as e:
            logger.error(
                "Expiration scan failed for document %s: %s",
                document.document_id,
                e,
                exc_info=True,
            )
            detail.error = str(e)
            summary.errors += 1
        else:
            detail.notified = outcome.notified
            detail.sent = outcome.sent_count
            detail.failed = outcome.failed_count
            if outcome.skipped_reason is not None:
                detail.skipped_reason = outcome.skipped_reason
                summary.skipped += 1
            elif outcome.notified:
                summary.notified += 1
            else:
                detail.error = ALL_DELIVERIES_FAILED
                summary.errors += 1

        summary.details.append(detail)

    logger.info(
        "Expiration scan %s finished: total=%d notified=%d skipped=%d errors=%d",
        run_id,
        summary.total,
        summary.notified,
        summary.skipped,
        summary.errors,
    )
    return summary
