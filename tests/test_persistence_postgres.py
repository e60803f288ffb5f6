"""PostgreSQL integration tests for the document store and user directory.

Requires:
- PCITRACK_TEST_DATABASE_URL pointing at a disposable database

Skipped when unset, unless PCITRACK_TEST_REQUIRE_POSTGRES=1.

Migrations are applied once per module and rolled back afterwards. Each test
starts from empty tables.
"""

from __future__ import annotations

import json
import os
from collections.abc import Callable, Generator
from datetime import timedelta
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import text

from pcitrack.errors import ConflictError, DocumentNotFoundError
from pcitrack.models.document import (
    Document,
    DocumentStatus,
    NotificationChannel,
    NotificationClaim,
    NotificationKind,
    NotificationOutcome,
    NotificationRecord,
)
from pcitrack.persistence.documents import DocumentQuery, PostgresDocumentStore
from pcitrack.persistence.users import PostgresUserDirectory

if TYPE_CHECKING:
    from sqlalchemy import Engine

TEST_URL_ENV = "PCITRACK_TEST_DATABASE_URL"
REQUIRE_POSTGRES_ENV = "PCITRACK_TEST_REQUIRE_POSTGRES"


def _skip_or_fail_if_no_postgres() -> str:
    """Skip or fail test if PostgreSQL is not configured."""
    url = os.environ.get(TEST_URL_ENV)
    if not url:
        msg = f"PostgreSQL integration tests require the {TEST_URL_ENV} env var"
        if os.environ.get(REQUIRE_POSTGRES_ENV, "0") == "1":
            pytest.fail(f"REQUIRED: {msg} ({REQUIRE_POSTGRES_ENV}=1)")
        pytest.skip(msg)
    return url


@pytest.fixture(scope="module")
def engine() -> Generator[Engine, None, None]:
    """Engine for the test database, migrated to head."""
    url = _skip_or_fail_if_no_postgres()

    from pcitrack.persistence.db import get_engine, reset_engine
    from pcitrack.persistence.migrate import run_downgrade, run_upgrade

    reset_engine()
    engine = get_engine(url)
    run_upgrade(engine)
    yield engine
    run_downgrade(engine)
    reset_engine()


@pytest.fixture
def pg_store(engine: Engine) -> PostgresDocumentStore:
    with engine.begin() as conn:
        conn.execute(text("DELETE FROM documents"))
        conn.execute(text("DELETE FROM users"))
    return PostgresDocumentStore(engine)


def _insert_user(engine: Engine, user_id: str, role: str, email_enabled: bool = True) -> None:
    prefs = {"email": {"enabled": email_enabled, "frequency": "IMMEDIATE"}}
    with engine.begin() as conn:
        conn.execute(
            text(
                """
                INSERT INTO users (user_id, name, email, role, notification_preferences)
                VALUES (:user_id, :name, :email, :role, CAST(:prefs AS JSONB))
                """
            ),
            {
                "user_id": user_id,
                "name": user_id.title(),
                "email": f"{user_id}@example.com",
                "role": role,
                "prefs": json.dumps(prefs),
            },
        )


class TestPostgresDocumentStore:
    def test_round_trip_with_notifications_and_claim(
        self,
        pg_store: PostgresDocumentStore,
        make_document: Callable[..., Document],
        now,
    ) -> None:
        record = NotificationRecord(
            kind=NotificationKind.EXPIRATION,
            timestamp=now,
            channel=NotificationChannel.EMAIL,
            recipient="admin@example.com",
            outcome=NotificationOutcome.SENT,
            message="Alert",
        )
        claim = NotificationClaim(
            kind=NotificationKind.EXPIRATION, holder="scan:1", claimed_at=now
        )
        pg_store.save(make_document(document_id="doc-a", notifications=[record]))
        fetched = pg_store.get("doc-a")
        assert fetched is not None

        pg_store.save(fetched.model_copy(update={"notification_claim": claim}))

        stored = pg_store.get("doc-a")
        assert stored is not None
        assert stored.version == 2
        assert stored.notifications == [record]
        assert stored.notification_claim == claim

    def test_stale_update_conflicts(
        self, pg_store: PostgresDocumentStore, make_document: Callable[..., Document]
    ) -> None:
        pg_store.save(make_document(document_id="doc-a"))
        first = pg_store.get("doc-a")
        second = pg_store.get("doc-a")
        assert first is not None and second is not None

        pg_store.save(first.model_copy(update={"status": DocumentStatus.EXPIRED}))

        with pytest.raises(ConflictError) as exc_info:
            pg_store.save(second.model_copy(update={"status": DocumentStatus.VALID}))

        assert exc_info.value.actual_version == 2

    def test_update_of_missing_document(
        self, pg_store: PostgresDocumentStore, make_document: Callable[..., Document]
    ) -> None:
        with pytest.raises(DocumentNotFoundError):
            pg_store.save(make_document(document_id="ghost").model_copy(update={"version": 3}))

    def test_find_and_count(
        self,
        pg_store: PostgresDocumentStore,
        make_document: Callable[..., Document],
        now,
    ) -> None:
        pg_store.save(make_document(20, document_id="late"))
        pg_store.save(make_document(5, document_id="soon"))
        pg_store.save(make_document(8, document_id="gone", status=DocumentStatus.EXPIRED))

        found = pg_store.find(
            DocumentQuery(
                exclude_statuses=frozenset({DocumentStatus.EXPIRED}),
                expires_from=now,
                expires_to=now + timedelta(days=30),
            )
        )

        assert [d.document_id for d in found] == ["soon", "late"]
        assert pg_store.count_by(DocumentQuery(statuses=frozenset({DocumentStatus.EXPIRED}))) == 1


class TestPostgresUserDirectory:
    def test_active_admins_sorted_by_email(
        self, engine: Engine, pg_store: PostgresDocumentStore
    ) -> None:
        _insert_user(engine, "zoe", "ADMIN")
        _insert_user(engine, "amy", "ADMIN", email_enabled=False)
        _insert_user(engine, "rex", "USER")
        directory = PostgresUserDirectory(engine)

        admins = directory.find_active_admins()

        assert [a.user_id for a in admins] == ["amy", "zoe"]
        assert not admins[0].wants_email
        rex = directory.find_by_id("rex")
        assert rex is not None
        assert rex.notification_preferences.chat.enabled is False
        assert directory.find_by_id("nobody") is None
