"""Document notifier: claim, fan out, record.

One notify() call runs three steps against the document store:

1. Claim. Re-fetch the document, re-check the dedup guard and the absence of
   a live claim, then write notification_claim with a version-checked save.
   Losing the save (ConflictError) means another run touched the document;
   re-fetch and re-check, up to max_attempts times.
2. Fan out. Only the claim winner dispatches. Every recipient on every
   channel is an independent dispatch under the per-call timeout, producing
   one NotificationRecord each.
3. Record. Append the records and clear the claim in a second CAS cycle,
   re-applying onto a fresh copy on conflict.

A run that finds a fresh SENT record or a live claim skips the document, so
two runs racing on the same document send at most once.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Final

from pcitrack.errors import ConflictError, DocumentNotFoundError
from pcitrack.models.document import (
    Document,
    NotificationChannel,
    NotificationClaim,
    NotificationKind,
    NotificationOutcome,
    NotificationRecord,
)
from pcitrack.notifications.content import RenderedMessage, render_expiration
from pcitrack.notifications.dedup import DEFAULT_COOLDOWN_DAYS, claim_is_live, should_notify
from pcitrack.notifications.dispatcher import DEFAULT_TIMEOUT_SECONDS, dispatch_with_timeout

if TYPE_CHECKING:
    from pcitrack.notifications.dispatcher import NotificationDispatcher
    from pcitrack.persistence.documents import DocumentStore
    from pcitrack.persistence.users import UserDirectory

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS: Final[int] = 5
DEFAULT_CLAIM_TTL_SECONDS: Final[int] = 900

SKIP_COOLDOWN: Final[str] = "cooldown"
SKIP_CLAIMED: Final[str] = "claimed"
SKIP_CONTENDED: Final[str] = "contended"
SKIP_NO_RECIPIENTS: Final[str] = "no_recipients"


@dataclass(frozen=True)
class Recipient:
    """One delivery target."""

    channel: NotificationChannel
    address: str


@dataclass
class NotifyOutcome:
    """Result of one notify() call.

    Attributes:
        notified: True when at least one delivery succeeded.
        skipped_reason: Why nothing was dispatched, None when dispatched.
        records: Records appended to the document, in dispatch order.
    """

    notified: bool
    skipped_reason: str | None = None
    records: list[NotificationRecord] = field(default_factory=list)

    @property
    def sent_count(self) -> int:
        return sum(1 for r in self.records if r.outcome == NotificationOutcome.SENT)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.records if r.outcome == NotificationOutcome.FAILED)


def _record_message(subject: str, error_detail: str | None) -> str:
    if error_detail:
        return f"{subject} - Error: {error_detail}"
    return subject


class DocumentNotifier:
    """Sends document notifications without duplicates across concurrent runs."""

    def __init__(
        self,
        store: DocumentStore,
        users: UserDirectory,
        dispatcher: NotificationDispatcher,
        *,
        channels: Iterable[NotificationChannel] | None = None,
        default_chat_channel: str = "",
        frontend_url: str = "",
        cooldown_days: int = DEFAULT_COOLDOWN_DAYS,
        claim_ttl_seconds: int = DEFAULT_CLAIM_TTL_SECONDS,
        dispatch_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        """Initialize the notifier.

        Args:
            store: Document store (version-checked saves).
            users: User directory for recipient resolution.
            dispatcher: Notification dispatcher.
            channels: Channels to fan out on. Defaults to all channels.
            default_chat_channel: Chat channel that receives every alert.
            frontend_url: Base URL for links in message bodies.
            cooldown_days: Dedup window after a successful send.
            claim_ttl_seconds: Age after which a claim is considered abandoned.
            dispatch_timeout_seconds: Per-dispatch timeout.
            max_attempts: CAS attempts for the claim and record steps.
        """
        self._store = store
        self._users = users
        self._dispatcher = dispatcher
        self._channels = frozenset(channels) if channels is not None else frozenset(
            NotificationChannel
        )
        self._default_chat_channel = default_chat_channel
        self._frontend_url = frontend_url
        self._cooldown_days = cooldown_days
        self._claim_ttl_seconds = claim_ttl_seconds
        self._dispatch_timeout_seconds = dispatch_timeout_seconds
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._max_attempts = max_attempts

    def resolve_recipients(self, document: Document) -> list[Recipient]:
        """Recipients for a document alert, deduplicated, in stable order.

        Email goes to the assigned user (when email is enabled) and to every
        active admin with email enabled. Chat goes to the assigned user's chat
        id (when chat is enabled) and to the default chat channel.
        """
        assigned = self._users.find_by_id(document.assigned_to) if document.assigned_to else None
        recipients: list[Recipient] = []

        if NotificationChannel.EMAIL in self._channels:
            emails: list[str] = []
            if assigned is not None and assigned.wants_email:
                emails.append(assigned.email)
            emails.extend(
                admin.email for admin in self._users.find_active_admins() if admin.wants_email
            )
            for email in dict.fromkeys(emails):
                recipients.append(Recipient(NotificationChannel.EMAIL, email))

        if NotificationChannel.CHAT in self._channels:
            targets: list[str] = []
            if assigned is not None and assigned.chat_target:
                targets.append(assigned.chat_target)
            if self._default_chat_channel:
                targets.append(self._default_chat_channel)
            for target in dict.fromkeys(targets):
                recipients.append(Recipient(NotificationChannel.CHAT, target))

        return recipients

    async def notify_expiration(
        self,
        document_id: str,
        days_remaining: int,
        *,
        now: datetime,
        holder: str,
    ) -> NotifyOutcome:
        """Send an EXPIRATION alert for a document, subject to dedup and claim."""
        return await self.notify(
            document_id,
            NotificationKind.EXPIRATION,
            lambda document: render_expiration(document, days_remaining, self._frontend_url),
            now=now,
            holder=holder,
        )

    async def notify_expired(
        self,
        document_id: str,
        *,
        now: datetime,
        holder: str,
    ) -> NotifyOutcome:
        """Send the EXPIRED notice. Only an earlier EXPIRED notice suppresses it."""
        return await self.notify(
            document_id,
            NotificationKind.EXPIRED,
            lambda document: render_expiration(document, 0, self._frontend_url),
            now=now,
            holder=holder,
        )

    async def notify(
        self,
        document_id: str,
        kind: NotificationKind,
        render: Callable[[Document], RenderedMessage],
        *,
        now: datetime,
        holder: str,
    ) -> NotifyOutcome:
        """Claim the document, dispatch to every recipient, record outcomes.

        Args:
            document_id: Document to notify about.
            kind: Notification kind, used by the dedup guard.
            render: Builds the message from the claimed document.
            now: Reference instant for dedup, claim and record timestamps.
            holder: Identifier of the calling run, stored on the claim.

        Returns:
            NotifyOutcome describing what happened.

        Raises:
            DocumentNotFoundError: If the document does not exist.
            ConflictError: If records could not be written after max_attempts.
        """
        claimed, skipped_reason = self._claim(document_id, kind, now, holder)
        if claimed is None:
            return NotifyOutcome(notified=False, skipped_reason=skipped_reason)

        records: list[NotificationRecord] = []
        try:
            recipients = self.resolve_recipients(claimed)
            if not recipients:
                logger.info("No recipients for document %s, skipping", document_id)
                return NotifyOutcome(notified=False, skipped_reason=SKIP_NO_RECIPIENTS)

            message = render(claimed)
            results = await asyncio.gather(
                *(
                    dispatch_with_timeout(
                        self._dispatcher,
                        recipient.address,
                        recipient.channel,
                        message.subject,
                        message.body,
                        self._dispatch_timeout_seconds,
                    )
                    for recipient in recipients
                )
            )
            for recipient, result in zip(recipients, results, strict=True):
                records.append(
                    NotificationRecord(
                        kind=kind,
                        timestamp=now,
                        channel=recipient.channel,
                        recipient=recipient.address,
                        outcome=result.outcome,
                        message=_record_message(message.subject, result.error_detail),
                    )
                )
        finally:
            self._record(document_id, holder, records, now)

        outcome = NotifyOutcome(
            notified=any(r.outcome == NotificationOutcome.SENT for r in records),
            records=records,
        )
        logger.info(
            "Notified document %s (%s): %d sent, %d failed",
            document_id,
            kind.value,
            outcome.sent_count,
            outcome.failed_count,
        )
        return outcome

    def _claim(
        self,
        document_id: str,
        kind: NotificationKind,
        now: datetime,
        holder: str,
    ) -> tuple[Document | None, str | None]:
        """Win the claim for kind, or return the reason the document is skipped."""
        for attempt in range(1, self._max_attempts + 1):
            document = self._store.get(document_id)
            if document is None:
                raise DocumentNotFoundError(document_id)

            if not should_notify(document.notifications, kind, now, self._cooldown_days):
                return None, SKIP_COOLDOWN
            if claim_is_live(document.notification_claim, now, self._claim_ttl_seconds):
                return None, SKIP_CLAIMED
            if document.notification_claim is not None:
                logger.warning(
                    "Taking over stale claim on document %s held by %s since %s",
                    document_id,
                    document.notification_claim.holder,
                    document.notification_claim.claimed_at.isoformat(),
                )

            candidate = document.model_copy(
                update={
                    "notification_claim": NotificationClaim(
                        kind=kind, holder=holder, claimed_at=now
                    )
                }
            )
            try:
                return self._store.save(candidate), None
            except ConflictError:
                logger.debug(
                    "Claim on document %s lost a version race (attempt %d)", document_id, attempt
                )

        logger.warning(
            "Could not claim document %s after %d attempts", document_id, self._max_attempts
        )
        return None, SKIP_CONTENDED

    def _record(
        self,
        document_id: str,
        holder: str,
        records: list[NotificationRecord],
        now: datetime,
    ) -> Document:
        """Append records and release this holder's claim."""
        last_conflict: ConflictError | None = None
        for attempt in range(1, self._max_attempts + 1):
            document = self._store.get(document_id)
            if document is None:
                raise DocumentNotFoundError(document_id)

            update: dict[str, object] = {
                "notifications": [*document.notifications, *records],
                "updated_at": now,
            }
            claim = document.notification_claim
            if claim is not None and claim.holder == holder:
                update["notification_claim"] = None

            try:
                return self._store.save(document.model_copy(update=update))
            except ConflictError as e:
                last_conflict = e
                logger.debug(
                    "Recording on document %s lost a version race (attempt %d)",
                    document_id,
                    attempt,
                )

        logger.error(
            "Failed to record %d notification outcomes on document %s; claim held by %s",
            len(records),
            document_id,
            holder,
        )
        for record in records:
            logger.error(
                "Unrecorded %s notification for document %s: %s to %s at %s (%s)",
                record.kind.value,
                document_id,
                record.channel.value,
                record.recipient,
                record.timestamp.isoformat(),
                record.outcome.value,
            )
        assert last_conflict is not None
        raise last_conflict
