"""Pytest configuration and fixtures for PCI Tracker tests.

Jobs run against in-memory stores, a recording dispatcher and a fixed clock,
so no test touches a database, an SMTP relay or Slack.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from pcitrack.config import Settings
from pcitrack.jobs.context import JobContext
from pcitrack.models.document import (
    Document,
    DocumentStatus,
    DocumentType,
    NotificationChannel,
    NotificationOutcome,
)
from pcitrack.models.user import (
    ChatPreferences,
    EmailPreferences,
    NotificationPreferences,
    User,
    UserRole,
)
from pcitrack.notifications.dispatcher import DispatchResult
from pcitrack.persistence.documents import InMemoryDocumentStore
from pcitrack.persistence.users import InMemoryUserDirectory

FIXED_NOW = datetime(2024, 1, 15, 9, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def clear_pcitrack_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Start every test from default settings and in-memory stores.

    PCITRACK_TEST_* variables configure the test run itself and are kept.
    """
    for key in list(os.environ):
        if key.startswith("PCITRACK_") and not key.startswith("PCITRACK_TEST_"):
            monkeypatch.delenv(key, raising=False)


class RecordingDispatcher:
    """NotificationDispatcher double that records every call.

    Recipients in failing get a FAILED result, recipients in hanging never
    answer (the caller's timeout has to cut them off), and delay_seconds
    makes every call yield to the event loop before answering.
    """

    def __init__(
        self,
        failing: Iterable[str] = (),
        hanging: Iterable[str] = (),
        delay_seconds: float = 0.0,
    ) -> None:
        self.calls: list[tuple[str, NotificationChannel, str, str]] = []
        self.failing = set(failing)
        self.hanging = set(hanging)
        self.delay_seconds = delay_seconds

    async def dispatch(
        self,
        recipient: str,
        channel: NotificationChannel,
        subject: str,
        body: str,
    ) -> DispatchResult:
        self.calls.append((recipient, channel, subject, body))
        if recipient in self.hanging:
            await asyncio.sleep(3600)
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if recipient in self.failing:
            return DispatchResult(outcome=NotificationOutcome.FAILED, error_detail="mailbox full")
        return DispatchResult(outcome=NotificationOutcome.SENT)

    def recipients(self) -> list[str]:
        return [call[0] for call in self.calls]


def make_user(
    user_id: str,
    *,
    role: UserRole = UserRole.USER,
    email_enabled: bool = True,
    chat_user_id: str | None = None,
    is_active: bool = True,
) -> User:
    """User with the given channel preferences."""
    return User(
        user_id=user_id,
        name=user_id.title(),
        email=f"{user_id}@example.com",
        role=role,
        is_active=is_active,
        notification_preferences=NotificationPreferences(
            email=EmailPreferences(enabled=email_enabled),
            chat=ChatPreferences(enabled=chat_user_id is not None, chat_user_id=chat_user_id),
        ),
    )


@pytest.fixture
def now() -> datetime:
    """Fixed reference instant."""
    return FIXED_NOW


@pytest.fixture
def make_document(now: datetime) -> Callable[..., Document]:
    """Factory for documents expiring a number of days after now."""
    counter = {"n": 0}

    def _make(
        expires_in_days: float = 10,
        *,
        status: DocumentStatus = DocumentStatus.EXPIRING_SOON,
        document_id: str | None = None,
        merchant_name: str | None = None,
        **attributes: Any,
    ) -> Document:
        counter["n"] += 1
        expiration = now + timedelta(days=expires_in_days)
        return Document(
            document_id=document_id or f"doc-{counter['n']:03d}",
            merchant_name=merchant_name or f"Merchant {counter['n']}",
            document_type=DocumentType.AOC,
            pci_version="4.0",
            issue_date=expiration - timedelta(days=365),
            expiration_date=expiration,
            status=status,
            **attributes,
        )

    return _make


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def admin() -> User:
    return make_user("admin", role=UserRole.ADMIN)


@pytest.fixture
def users(admin: User) -> InMemoryUserDirectory:
    """Directory with a single admin who has email enabled."""
    return InMemoryUserDirectory([admin])


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def settings() -> Settings:
    return Settings(dispatch_timeout_seconds=0.5)


@pytest.fixture
def context(
    store: InMemoryDocumentStore,
    users: InMemoryUserDirectory,
    dispatcher: RecordingDispatcher,
    settings: Settings,
    now: datetime,
) -> JobContext:
    """JobContext over in-memory collaborators with a fixed clock."""
    return JobContext(
        store=store,
        users=users,
        dispatcher=dispatcher,
        settings=settings,
        clock=lambda: now,
    )
