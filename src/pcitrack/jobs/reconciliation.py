"""Status reconciliation job.

Stored statuses drift as the clock advances: a VALID document becomes
EXPIRING_SOON and then EXPIRED without anyone touching it. This job
re-derives the status of every document that can still move and persists
the ones that changed. A transition into EXPIRED triggers one EXPIRED
notice through the regular dedup and claim path. Reminders sent by the
expiration scan do not suppress it.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Final

from pcitrack.errors import ConflictError, DocumentNotFoundError
from pcitrack.jobs.context import new_run_id
from pcitrack.jobs.models import ReconciliationDetail, ReconciliationSummary
from pcitrack.lifecycle.status import derive_document_status
from pcitrack.models.document import Document, DocumentStatus
from pcitrack.persistence.documents import DocumentQuery

if TYPE_CHECKING:
    from pcitrack.jobs.context import JobContext
    from pcitrack.persistence.documents import DocumentStore

logger = logging.getLogger(__name__)

JOB_NAME: Final[str] = "status_reconciliation"

RECONCILED_STATUSES: Final[frozenset[DocumentStatus]] = frozenset(
    {
        DocumentStatus.VALID,
        DocumentStatus.EXPIRING_SOON,
        DocumentStatus.PENDING_REVIEW,
    }
)

MAX_SAVE_ATTEMPTS: Final[int] = 5


def reconcile_document(
    store: DocumentStore,
    document: Document,
    now: datetime,
    expiring_soon_threshold_days: int,
    max_attempts: int = MAX_SAVE_ATTEMPTS,
) -> tuple[DocumentStatus, DocumentStatus] | None:
    """Persist the derived status of one document if it differs.

    On a version conflict the document is re-fetched and the status
    re-derived from the fresh copy.

    Returns:
        (old_status, new_status) when a change was saved, None otherwise.

    Raises:
        DocumentNotFoundError: If the document vanished between attempts.
        ConflictError: If every attempt lost a version race.
    """
    current = document
    last_conflict: ConflictError | None = None

    for attempt in range(1, max_attempts + 1):
        new_status = derive_document_status(current, now, expiring_soon_threshold_days)
        if new_status == current.status:
            return None

        try:
            store.save(current.model_copy(update={"status": new_status, "updated_at": now}))
            return current.status, new_status
        except ConflictError as e:
            last_conflict = e
            logger.debug(
                "Reconciling document %s lost a version race (attempt %d)",
                current.document_id,
                attempt,
            )
            refreshed = store.get(current.document_id)
            if refreshed is None:
                raise DocumentNotFoundError(current.document_id) from e
            current = refreshed

    assert last_conflict is not None
    raise last_conflict


async def run_status_reconciliation(context: JobContext) -> ReconciliationSummary:
    """Re-derive and persist statuses of all non-terminal documents.

    Args:
        context: Job collaborators and settings.

    Returns:
        ReconciliationSummary with one detail entry per changed or failed document.
    """
    now = context.now()
    run_id = new_run_id(JOB_NAME)
    threshold = context.settings.expiring_soon_days

    documents = context.store.find(DocumentQuery(statuses=RECONCILED_STATUSES))
    logger.info("Status reconciliation %s: %d documents to check", run_id, len(documents))

    notifier = context.notifier()
    summary = ReconciliationSummary(run_id=run_id, started_at=now, total=len(documents))

    for document in documents:
        try:
            change = reconcile_document(context.store, document, now, threshold)
        except Exception as e:
            logger.error(
                "Status reconciliation failed for document %s: %s",
                document.document_id,
                e,
                exc_info=True,
            )
            summary.errors += 1
            summary.details.append(
                ReconciliationDetail(
                    document_id=document.document_id,
                    merchant_name=document.merchant_name,
                    old_status=document.status,
                    new_status=document.status,
                    error=str(e),
                )
            )
            continue

        if change is None:
            continue

        old_status, new_status = change
        summary.updated += 1
        detail = ReconciliationDetail(
            document_id=document.document_id,
            merchant_name=document.merchant_name,
            old_status=old_status,
            new_status=new_status,
        )
        logger.info(
            "Document %s status %s -> %s", document.document_id, old_status, new_status
        )

        if new_status == DocumentStatus.EXPIRED:
            try:
                outcome = await notifier.notify_expired(
                    document.document_id, now=now, holder=run_id
                )
            except Exception as e:
                logger.error(
                    "Expiry notice failed for document %s: %s",
                    document.document_id,
                    e,
                    exc_info=True,
                )
                detail.error = str(e)
                summary.errors += 1
            else:
                detail.notified = outcome.notified
                if outcome.notified:
                    summary.notified += 1

        summary.details.append(detail)

    logger.info(
        "Status reconciliation %s finished: total=%d updated=%d notified=%d errors=%d",
        run_id,
        summary.total,
        summary.updated,
        summary.notified,
        summary.errors,
    )
    return summary
