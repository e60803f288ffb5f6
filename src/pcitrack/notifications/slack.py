"""Slack chat transport.

Posts messages through the Slack Web API (chat.postMessage) with httpx.
Each call gets an OpenTelemetry span with safe attributes only.

Security:
- The bot token is sent as a bearer header and never set on spans or logs
- Message bodies are not recorded on spans
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from pcitrack.errors import DispatchFailure

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_USER_AGENT = "PCITracker-Notifier/1.0"


class SlackChatTransport:
    """Chat transport posting to Slack channels or user ids."""

    def __init__(
        self,
        token: str,
        *,
        api_url: str = "https://slack.com/api",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            token: Slack bot token.
            api_url: Base URL of the Slack Web API.
            timeout_seconds: httpx request timeout.
            http_transport: Optional httpx transport (tests use MockTransport).
        """
        if not token:
            raise ValueError("Slack token is required for the chat transport")
        self._token = token
        self._api_url = api_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._http_transport = http_transport

    def build_payload(self, recipient: str, subject: str, body: str) -> dict[str, Any]:
        """Build the chat.postMessage payload: a header block plus the body."""
        return {
            "channel": recipient,
            "text": subject,
            "blocks": [
                {"type": "header", "text": {"type": "plain_text", "text": subject[:150]}},
                {"type": "section", "text": {"type": "mrkdwn", "text": body[:3000]}},
            ],
        }

    async def send(self, recipient: str, subject: str, body: str) -> None:
        """Post one message.

        Raises:
            DispatchFailure: On HTTP errors, network errors, or ok=false replies.
        """
        from opentelemetry import trace

        tracer = trace.get_tracer("pcitrack.notifications")
        url = f"{self._api_url}/chat.postMessage"

        with tracer.start_as_current_span(
            "notification.chat.delivery",
            attributes={
                "http.method": "POST",
                "http.url": url,
                "pcitrack.chat_recipient": recipient,
            },
        ) as span:
            start_time = time.monotonic()
            error: str | None = None
            try:
                async with httpx.AsyncClient(
                    timeout=self._timeout_seconds, transport=self._http_transport
                ) as client:
                    response = await client.post(
                        url,
                        json=self.build_payload(recipient, subject, body),
                        headers={
                            "Authorization": f"Bearer {self._token}",
                            "User-Agent": DEFAULT_USER_AGENT,
                        },
                    )
                span.set_attribute("http.status_code", response.status_code)

                if not 200 <= response.status_code < 300:
                    error = f"HTTP {response.status_code}"
                else:
                    data = response.json()
                    if not data.get("ok", False):
                        error = f"Slack error: {data.get('error', 'unknown')}"

            except httpx.TimeoutException as e:
                error = f"Timeout: {e}"
                span.record_exception(e)

            except httpx.HTTPError as e:
                error = f"Connection error: {type(e).__name__}"
                span.record_exception(e)

            except ValueError:
                error = "Invalid JSON response"

            finally:
                duration_ms = int((time.monotonic() - start_time) * 1000)
                span.set_attribute("pcitrack.delivery_duration_ms", duration_ms)

            if error is not None:
                span.set_status(trace.StatusCode.ERROR, error)
                raise DispatchFailure("CHAT", recipient, error)

        logger.debug("Chat message posted to %s in %dms", recipient, duration_ms)
