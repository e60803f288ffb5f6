"""Tests for the channel dispatcher and the per-call timeout."""

from __future__ import annotations

import asyncio

from conftest import RecordingDispatcher

from pcitrack.errors import DispatchFailure
from pcitrack.models.document import NotificationChannel, NotificationOutcome
from pcitrack.notifications.dispatcher import ChannelDispatcher, dispatch_with_timeout


class _Transport:
    def __init__(self, error: str | None = None) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.error = error

    async def send(self, recipient: str, subject: str, body: str) -> None:
        if self.error:
            raise DispatchFailure("EMAIL", recipient, self.error)
        self.sent.append((recipient, subject, body))


class _Exploding:
    async def dispatch(self, recipient, channel, subject, body):
        raise RuntimeError("provider SDK bug")


class TestChannelDispatcher:
    def test_routes_to_channel_transport(self) -> None:
        email = _Transport()
        dispatcher = ChannelDispatcher({NotificationChannel.EMAIL: email})

        result = asyncio.run(
            dispatcher.dispatch("a@example.com", NotificationChannel.EMAIL, "Subject", "Body")
        )

        assert result.sent
        assert result.error_detail is None
        assert email.sent == [("a@example.com", "Subject", "Body")]

    def test_transport_failure_becomes_failed_result(self) -> None:
        dispatcher = ChannelDispatcher({NotificationChannel.EMAIL: _Transport("550 rejected")})

        result = asyncio.run(
            dispatcher.dispatch("a@example.com", NotificationChannel.EMAIL, "S", "B")
        )

        assert result.outcome == NotificationOutcome.FAILED
        assert result.error_detail == "550 rejected"

    def test_unconfigured_channel_fails(self) -> None:
        dispatcher = ChannelDispatcher({NotificationChannel.EMAIL: _Transport()})

        result = asyncio.run(dispatcher.dispatch("#pci", NotificationChannel.CHAT, "S", "B"))

        assert result.outcome == NotificationOutcome.FAILED
        assert "CHAT" in (result.error_detail or "")
        assert dispatcher.channels == frozenset({NotificationChannel.EMAIL})


class TestDispatchWithTimeout:
    def test_hung_channel_times_out_as_failed(self) -> None:
        dispatcher = RecordingDispatcher(hanging=["slow@example.com"])

        result = asyncio.run(
            dispatch_with_timeout(
                dispatcher, "slow@example.com", NotificationChannel.EMAIL, "S", "B", 0.05
            )
        )

        assert result.outcome == NotificationOutcome.FAILED
        assert result.error_detail is not None
        assert result.error_detail.startswith("Timed out")

    def test_hung_recipient_does_not_block_others(self) -> None:
        dispatcher = RecordingDispatcher(hanging=["slow@example.com"])

        async def fan_out():
            return await asyncio.gather(
                dispatch_with_timeout(
                    dispatcher, "slow@example.com", NotificationChannel.EMAIL, "S", "B", 0.05
                ),
                dispatch_with_timeout(
                    dispatcher, "fast@example.com", NotificationChannel.EMAIL, "S", "B", 0.05
                ),
            )

        slow, fast = asyncio.run(fan_out())

        assert not slow.sent
        assert fast.sent

    def test_unexpected_exception_becomes_failed(self) -> None:
        result = asyncio.run(
            dispatch_with_timeout(
                _Exploding(), "a@example.com", NotificationChannel.EMAIL, "S", "B"
            )
        )

        assert result.outcome == NotificationOutcome.FAILED
        assert result.error_detail == "Dispatch error: RuntimeError"
