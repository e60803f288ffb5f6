"""Notifications: dedup guard, dispatcher, transports and document notifier."""

from pcitrack.notifications.content import RenderedMessage, render_expiration, render_weekly_digest
from pcitrack.notifications.dedup import (
    DEFAULT_COOLDOWN_DAYS,
    claim_is_live,
    last_sent_at,
    should_notify,
)
from pcitrack.notifications.dispatcher import (
    ChannelDispatcher,
    DispatchResult,
    NotificationDispatcher,
    NotificationTransport,
    dispatch_with_timeout,
)
from pcitrack.notifications.service import DocumentNotifier, NotifyOutcome, Recipient

__all__ = [
    "DEFAULT_COOLDOWN_DAYS",
    "ChannelDispatcher",
    "DispatchResult",
    "DocumentNotifier",
    "NotificationDispatcher",
    "NotificationTransport",
    "NotifyOutcome",
    "Recipient",
    "RenderedMessage",
    "claim_is_live",
    "dispatch_with_timeout",
    "last_sent_at",
    "render_expiration",
    "render_weekly_digest",
    "should_notify",
]
