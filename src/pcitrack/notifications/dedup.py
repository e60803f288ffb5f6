"""Notification dedup guard.

Prevents re-alerting the same recipients about the same event across
repeated scheduled runs. Only successful sends suppress; a FAILED attempt
never blocks the next pass from retrying.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Final

from pcitrack.models.document import (
    NotificationClaim,
    NotificationKind,
    NotificationOutcome,
    NotificationRecord,
)

DEFAULT_COOLDOWN_DAYS: Final[int] = 7


def last_sent_at(
    notifications: Iterable[NotificationRecord],
    kind: NotificationKind,
) -> datetime | None:
    """Timestamp of the most recent SENT record of the given kind, if any."""
    latest: datetime | None = None
    for record in notifications:
        if record.kind != kind or record.outcome != NotificationOutcome.SENT:
            continue
        if latest is None or record.timestamp > latest:
            latest = record.timestamp
    return latest


def should_notify(
    notifications: Iterable[NotificationRecord],
    kind: NotificationKind,
    now: datetime,
    cooldown_days: int = DEFAULT_COOLDOWN_DAYS,
) -> bool:
    """Decide whether a new notification of kind may be sent.

    Args:
        notifications: The document's notification history.
        kind: Notification kind about to be sent.
        now: Reference instant.
        cooldown_days: Suppression window after a successful send.

    Returns:
        False iff a SENT record of the same kind is younger than the cooldown.
    """
    cooldown = timedelta(days=cooldown_days)
    for record in notifications:
        if (
            record.kind == kind
            and record.outcome == NotificationOutcome.SENT
            and now - record.timestamp < cooldown
        ):
            return False
    return True


def claim_is_live(
    claim: NotificationClaim | None,
    now: datetime,
    ttl_seconds: int,
    kind: NotificationKind | None = None,
) -> bool:
    """True when a run holds an unexpired claim (of kind, when given)."""
    if claim is None or (kind is not None and claim.kind != kind):
        return False
    return now - claim.claimed_at < timedelta(seconds=ttl_seconds)
