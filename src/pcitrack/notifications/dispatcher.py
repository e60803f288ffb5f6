"""Notification dispatcher: routes one message to one recipient on one channel.

The dispatcher is the boundary to email/chat providers. Channels raise
DispatchFailure; the dispatcher turns every failure (including timeouts) into
a FAILED DispatchResult so batch jobs never see a channel exception.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final, Protocol

from pcitrack.errors import DispatchFailure
from pcitrack.models.document import NotificationChannel, NotificationOutcome

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS: Final[float] = 30.0


@dataclass(frozen=True)
class DispatchResult:
    """Result of a single dispatch call.

    Attributes:
        outcome: SENT or FAILED.
        error_detail: Failure description, None on success.
        duration_ms: Wall-clock duration of the call.
    """

    outcome: NotificationOutcome
    error_detail: str | None = None
    duration_ms: int = 0

    @property
    def sent(self) -> bool:
        """True when the message was delivered."""
        return self.outcome == NotificationOutcome.SENT


class NotificationDispatcher(Protocol):
    """Interface for sending one notification."""

    async def dispatch(
        self,
        recipient: str,
        channel: NotificationChannel,
        subject: str,
        body: str,
    ) -> DispatchResult:
        """Send subject/body to recipient over channel."""
        ...


class NotificationTransport(Protocol):
    """A single delivery channel (SMTP, Slack...)."""

    async def send(self, recipient: str, subject: str, body: str) -> None:
        """Deliver a message.

        Raises:
            DispatchFailure: If the provider rejects or cannot be reached.
        """
        ...


class ChannelDispatcher:
    """Dispatcher that routes each call to the transport of its channel."""

    def __init__(self, transports: Mapping[NotificationChannel, NotificationTransport]) -> None:
        """Initialize with the available transports.

        Args:
            transports: Channel -> transport. Channels without a transport
                produce FAILED results.
        """
        self._transports = dict(transports)

    @property
    def channels(self) -> frozenset[NotificationChannel]:
        """Channels that have a transport."""
        return frozenset(self._transports)

    async def dispatch(
        self,
        recipient: str,
        channel: NotificationChannel,
        subject: str,
        body: str,
    ) -> DispatchResult:
        """Send through the channel's transport, never raising."""
        transport = self._transports.get(channel)
        if transport is None:
            return DispatchResult(
                outcome=NotificationOutcome.FAILED,
                error_detail=f"Channel {channel.value} is not configured",
            )

        start = time.monotonic()
        try:
            await transport.send(recipient, subject, body)
        except DispatchFailure as e:
            logger.warning("Dispatch failed on %s to %s: %s", channel.value, recipient, e.detail)
            return DispatchResult(
                outcome=NotificationOutcome.FAILED,
                error_detail=e.detail,
                duration_ms=int((time.monotonic() - start) * 1000),
            )

        return DispatchResult(
            outcome=NotificationOutcome.SENT,
            duration_ms=int((time.monotonic() - start) * 1000),
        )


async def dispatch_with_timeout(
    dispatcher: NotificationDispatcher,
    recipient: str,
    channel: NotificationChannel,
    subject: str,
    body: str,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> DispatchResult:
    """Call dispatcher.dispatch under a timeout.

    A hung channel or an unexpected dispatcher exception becomes a FAILED
    result, so one recipient can never stall or abort a batch.
    """
    start = time.monotonic()
    try:
        return await asyncio.wait_for(
            dispatcher.dispatch(recipient, channel, subject, body),
            timeout=timeout_seconds,
        )
    except TimeoutError:
        logger.warning(
            "Dispatch to %s on %s timed out after %.1fs", recipient, channel.value, timeout_seconds
        )
        detail = f"Timed out after {timeout_seconds:g}s"
    except DispatchFailure as e:
        detail = e.detail
    except Exception as e:
        logger.error(
            "Dispatcher error for %s on %s: %s", recipient, channel.value, e, exc_info=True
        )
        detail = f"Dispatch error: {type(e).__name__}"

    return DispatchResult(
        outcome=NotificationOutcome.FAILED,
        error_detail=detail,
        duration_ms=int((time.monotonic() - start) * 1000),
    )
