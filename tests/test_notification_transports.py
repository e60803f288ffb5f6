"""Tests for the SMTP and Slack transports.

Uses httpx.MockTransport for Slack, with no live network calls. The SMTP
transport is covered through message construction and error mapping only.
"""

from __future__ import annotations

import asyncio
import json
import smtplib
from typing import Any

import httpx
import pytest

from pcitrack.errors import DispatchFailure
from pcitrack.notifications.slack import SlackChatTransport
from pcitrack.notifications.smtp import SmtpEmailTransport


def _make_transport(
    status_code: int = 200,
    response_json: dict[str, Any] | None = None,
    raise_error: bool = False,
    captured: list[httpx.Request] | None = None,
) -> httpx.MockTransport:
    """Create a mock transport for testing."""

    def handler(request: httpx.Request) -> httpx.Response:
        if captured is not None:
            captured.append(request)
        if raise_error:
            raise httpx.ConnectError("Connection refused")
        body = response_json if response_json is not None else {"ok": True}
        return httpx.Response(status_code=status_code, json=body)

    return httpx.MockTransport(handler)


class TestSlackChatTransport:
    def test_posts_message_with_bearer_token(self) -> None:
        captured: list[httpx.Request] = []
        transport = SlackChatTransport(
            "xoxb-test", http_transport=_make_transport(captured=captured)
        )

        asyncio.run(transport.send("#pci-alerts", "Alert: PCI document", "Body text"))

        assert len(captured) == 1
        request = captured[0]
        assert str(request.url) == "https://slack.com/api/chat.postMessage"
        assert request.headers["Authorization"] == "Bearer xoxb-test"
        payload = json.loads(request.content)
        assert payload["channel"] == "#pci-alerts"
        assert payload["text"] == "Alert: PCI document"
        assert payload["blocks"][1]["text"]["text"] == "Body text"

    def test_ok_false_raises_dispatch_failure(self) -> None:
        transport = SlackChatTransport(
            "xoxb-test",
            http_transport=_make_transport(response_json={"ok": False, "error": "not_in_channel"}),
        )

        with pytest.raises(DispatchFailure) as exc_info:
            asyncio.run(transport.send("#pci-alerts", "S", "B"))

        assert exc_info.value.detail == "Slack error: not_in_channel"

    def test_http_error_status_raises(self) -> None:
        transport = SlackChatTransport("xoxb-test", http_transport=_make_transport(503))

        with pytest.raises(DispatchFailure) as exc_info:
            asyncio.run(transport.send("#pci-alerts", "S", "B"))

        assert exc_info.value.detail == "HTTP 503"

    def test_connection_error_raises(self) -> None:
        transport = SlackChatTransport("xoxb-test", http_transport=_make_transport(raise_error=True))

        with pytest.raises(DispatchFailure) as exc_info:
            asyncio.run(transport.send("U123", "S", "B"))

        assert exc_info.value.detail == "Connection error: ConnectError"
        assert exc_info.value.recipient == "U123"

    def test_requires_token(self) -> None:
        with pytest.raises(ValueError):
            SlackChatTransport("")


class TestSmtpEmailTransport:
    def _transport(self) -> SmtpEmailTransport:
        return SmtpEmailTransport("smtp.example.com", 587, sender="pci-tracker@example.com")

    def test_build_message_headers_and_parts(self) -> None:
        message = self._transport().build_message(
            "admin@example.com", "Alert: PCI document", "Line one\nLine <two>"
        )

        assert message["To"] == "admin@example.com"
        assert message["From"] == "pci-tracker@example.com"
        assert message["Subject"] == "Alert: PCI document"
        html_part = message.get_body(preferencelist=("html",))
        assert html_part is not None
        assert "Line &lt;two&gt;" in html_part.get_content()
        plain_part = message.get_body(preferencelist=("plain",))
        assert plain_part is not None
        assert "Line one" in plain_part.get_content()

    def test_smtp_error_maps_to_dispatch_failure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        transport = self._transport()

        def refuse(message: Any) -> None:
            raise smtplib.SMTPRecipientsRefused({"admin@example.com": (550, b"no such user")})

        monkeypatch.setattr(transport, "_send_blocking", refuse)

        with pytest.raises(DispatchFailure) as exc_info:
            asyncio.run(transport.send("admin@example.com", "S", "B"))

        assert exc_info.value.channel == "EMAIL"
        assert exc_info.value.detail.startswith("SMTPRecipientsRefused")
