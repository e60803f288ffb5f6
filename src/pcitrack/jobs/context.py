"""Job context: the collaborators every lifecycle job runs against.

build_context() wires Postgres or in-memory stores and the configured
transports from Settings. Tests construct JobContext directly with fakes.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from pcitrack.config import Settings, load_settings
from pcitrack.models.document import NotificationChannel
from pcitrack.notifications.dispatcher import (
    ChannelDispatcher,
    NotificationDispatcher,
    NotificationTransport,
)
from pcitrack.notifications.service import DocumentNotifier
from pcitrack.notifications.slack import SlackChatTransport
from pcitrack.notifications.smtp import SmtpEmailTransport
from pcitrack.persistence.documents import (
    DocumentStore,
    InMemoryDocumentStore,
    PostgresDocumentStore,
)
from pcitrack.persistence.users import InMemoryUserDirectory, PostgresUserDirectory, UserDirectory

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def new_run_id(job_name: str) -> str:
    """Identifier of one job run, used as the notification claim holder."""
    return f"{job_name}:{uuid.uuid4().hex[:12]}"


@dataclass
class JobContext:
    """Store, directory, dispatcher, settings and clock shared by the jobs.

    Attributes:
        store: Document store.
        users: User directory.
        dispatcher: Notification dispatcher.
        settings: Resolved settings (windows, cooldown, timeouts).
        clock: Returns the current instant; jobs call it once per run.
        channels: Channels to fan out on. None means every channel.
    """

    store: DocumentStore
    users: UserDirectory
    dispatcher: NotificationDispatcher
    settings: Settings = field(default_factory=Settings)
    clock: Callable[[], datetime] = _utcnow
    channels: frozenset[NotificationChannel] | None = None

    def now(self) -> datetime:
        """Current instant from the context clock."""
        return self.clock()

    def notifier(self) -> DocumentNotifier:
        """DocumentNotifier configured from this context."""
        return DocumentNotifier(
            self.store,
            self.users,
            self.dispatcher,
            channels=self.channels,
            default_chat_channel=self.settings.slack_channel,
            frontend_url=self.settings.frontend_url,
            cooldown_days=self.settings.cooldown_days,
            claim_ttl_seconds=self.settings.claim_ttl_seconds,
            dispatch_timeout_seconds=self.settings.dispatch_timeout_seconds,
        )


def build_dispatcher(settings: Settings) -> ChannelDispatcher:
    """ChannelDispatcher with a transport for each configured channel."""
    transports: dict[NotificationChannel, NotificationTransport] = {}

    if settings.email_configured:
        transports[NotificationChannel.EMAIL] = SmtpEmailTransport(
            settings.smtp_host,
            settings.smtp_port,
            sender=settings.email_from,
            username=settings.smtp_user,
            password=settings.smtp_password,
            starttls=settings.smtp_starttls,
        )
    else:
        logger.warning("SMTP host not configured, email notifications disabled")

    if settings.chat_configured:
        transports[NotificationChannel.CHAT] = SlackChatTransport(
            settings.slack_token,
            api_url=settings.slack_api_url,
            timeout_seconds=settings.dispatch_timeout_seconds,
        )
    else:
        logger.info("Slack token not configured, chat notifications disabled")

    return ChannelDispatcher(transports)


def build_context(settings: Settings | None = None) -> JobContext:
    """Wire a JobContext from settings.

    Postgres-backed stores when a database URL is configured, in-memory
    stores otherwise. Only channels with a configured transport receive
    recipients.
    """
    settings = settings or load_settings()
    dispatcher = build_dispatcher(settings)

    store: DocumentStore
    users: UserDirectory
    if settings.database_url:
        from pcitrack.observability.tracing import instrument_sqlalchemy
        from pcitrack.persistence.db import get_engine

        engine = get_engine(settings.database_url)
        instrument_sqlalchemy(engine)
        store = PostgresDocumentStore(engine)
        users = PostgresUserDirectory(engine)
    else:
        logger.warning("PCITRACK_DATABASE_URL not set, using in-memory stores")
        store = InMemoryDocumentStore()
        users = InMemoryUserDirectory()

    return JobContext(
        store=store,
        users=users,
        dispatcher=dispatcher,
        settings=settings,
        channels=dispatcher.channels,
    )
