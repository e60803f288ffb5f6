"""Weekly report job: status statistics and upcoming expirations for admins.

Read-only towards documents. The digest is rendered once and emailed to each
active administrator with email notifications enabled; deliveries are
independent, so one unreachable admin does not block the others.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Final

from pcitrack.jobs.context import new_run_id
from pcitrack.jobs.models import DigestDelivery, UpcomingExpiration, WeeklyReport
from pcitrack.lifecycle.status import days_remaining
from pcitrack.models.document import DocumentStatus, NotificationChannel
from pcitrack.notifications.content import render_weekly_digest
from pcitrack.notifications.dispatcher import dispatch_with_timeout
from pcitrack.persistence.documents import DocumentQuery

if TYPE_CHECKING:
    from pcitrack.jobs.context import JobContext

logger = logging.getLogger(__name__)

JOB_NAME: Final[str] = "weekly_report"


def collect_statistics(context: JobContext) -> dict[str, int]:
    """Document count per status, plus "total"."""
    statistics = {
        status.value: context.store.count_by(DocumentQuery(statuses=frozenset({status})))
        for status in DocumentStatus
    }
    statistics["total"] = context.store.count_by(DocumentQuery())
    return statistics


def collect_upcoming(
    context: JobContext, now: datetime, window_days: int
) -> list[UpcomingExpiration]:
    """Documents expiring within window_days of now, soonest first."""
    documents = context.store.find(
        DocumentQuery(expires_from=now, expires_to=now + timedelta(days=window_days))
    )

    names: dict[str, str | None] = {}
    rows: list[UpcomingExpiration] = []
    for document in documents:
        assignee = document.assigned_to
        if assignee is not None and assignee not in names:
            user = context.users.find_by_id(assignee)
            names[assignee] = user.name if user is not None else None
        rows.append(
            UpcomingExpiration(
                document_id=document.document_id,
                merchant_name=document.merchant_name,
                document_type=document.document_type,
                expiration_date=document.expiration_date,
                days_remaining=days_remaining(document.expiration_date, now),
                status=document.status,
                assigned_to_name=names.get(assignee) if assignee is not None else None,
            )
        )
    return rows


async def run_weekly_report(context: JobContext) -> WeeklyReport:
    """Build the weekly digest and email it to every eligible administrator.

    Args:
        context: Job collaborators and settings.

    Returns:
        WeeklyReport with statistics, upcoming expirations and one delivery
        entry per administrator.
    """
    now = context.now()
    run_id = new_run_id(JOB_NAME)
    window = context.settings.report_window_days

    report = WeeklyReport(
        run_id=run_id,
        generated_at=now,
        statistics=collect_statistics(context),
        upcoming_expirations=collect_upcoming(context, now, window),
    )

    channels = context.channels
    if channels is not None and NotificationChannel.EMAIL not in channels:
        logger.warning("Weekly report %s: email channel unavailable, digest not sent", run_id)
        return report

    admins = [admin for admin in context.users.find_active_admins() if admin.wants_email]
    if not admins:
        logger.info("Weekly report %s: no administrators with email enabled", run_id)
        return report

    message = render_weekly_digest(
        now,
        report.statistics,
        [row.model_dump(mode="json") for row in report.upcoming_expirations],
        context.settings.frontend_url,
        window_days=window,
    )

    results = await asyncio.gather(
        *(
            dispatch_with_timeout(
                context.dispatcher,
                admin.email,
                NotificationChannel.EMAIL,
                message.subject,
                message.body,
                context.settings.dispatch_timeout_seconds,
            )
            for admin in admins
        )
    )
    for admin, result in zip(admins, results, strict=True):
        report.deliveries.append(
            DigestDelivery(recipient=admin.email, sent=result.sent, error=result.error_detail)
        )

    sent = sum(1 for d in report.deliveries if d.sent)
    logger.info(
        "Weekly report %s sent to %d of %d administrators", run_id, sent, len(report.deliveries)
    )
    return report
