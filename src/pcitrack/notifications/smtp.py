"""SMTP email transport.

smtplib is blocking, so each send runs in a worker thread; the caller's
timeout (dispatch_with_timeout) bounds how long a batch waits for it.
Credentials are never logged.
"""

from __future__ import annotations

import asyncio
import html
import logging
import smtplib
from email.message import EmailMessage

from pcitrack.errors import DispatchFailure

logger = logging.getLogger(__name__)

DEFAULT_SMTP_TIMEOUT_SECONDS = 30


class SmtpEmailTransport:
    """Email transport backed by an SMTP relay."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        *,
        sender: str,
        username: str = "",
        password: str = "",
        starttls: bool = True,
        timeout_seconds: int = DEFAULT_SMTP_TIMEOUT_SECONDS,
    ) -> None:
        self._host = host
        self._port = port
        self._sender = sender
        self._username = username
        self._password = password
        self._starttls = starttls
        self._timeout_seconds = timeout_seconds

    def build_message(self, recipient: str, subject: str, body: str) -> EmailMessage:
        """Build a plain-text message with an HTML alternative."""
        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(body)
        message.add_alternative(_as_html(body), subtype="html")
        return message

    def _send_blocking(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self._host, self._port, timeout=self._timeout_seconds) as smtp:
            if self._starttls:
                smtp.starttls()
            if self._username:
                smtp.login(self._username, self._password)
            smtp.send_message(message)

    async def send(self, recipient: str, subject: str, body: str) -> None:
        """Send one email.

        Raises:
            DispatchFailure: On any SMTP or socket error.
        """
        message = self.build_message(recipient, subject, body)
        try:
            await asyncio.to_thread(self._send_blocking, message)
        except (smtplib.SMTPException, OSError) as e:
            raise DispatchFailure("EMAIL", recipient, f"{type(e).__name__}: {e}") from e
        logger.debug("Email sent to %s via %s:%d", recipient, self._host, self._port)


def _as_html(body: str) -> str:
    """Wrap a plain-text body in minimal HTML, escaping markup."""
    paragraphs = "".join(f"<p>{html.escape(line)}</p>" for line in body.splitlines() if line)
    return f'<div style="font-family: Arial, sans-serif;">{paragraphs}</div>'
