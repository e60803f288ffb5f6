"""Tests for the in-memory document store contract.

save() is a compare-and-swap on version; find() orders by expiration_date.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

import pytest

from pcitrack.errors import ConflictError
from pcitrack.models.document import Document, DocumentStatus
from pcitrack.persistence.documents import DocumentQuery, InMemoryDocumentStore


class TestSave:
    def test_insert_bumps_version(
        self, store: InMemoryDocumentStore, make_document: Callable[..., Document]
    ) -> None:
        saved = store.save(make_document())

        assert saved.version == 1
        assert saved.created_at is not None

    def test_stale_copy_conflicts(
        self, store: InMemoryDocumentStore, make_document: Callable[..., Document]
    ) -> None:
        saved = store.save(make_document(document_id="doc-a"))
        first = store.get("doc-a")
        second = store.get("doc-a")
        assert first is not None and second is not None

        store.save(first.model_copy(update={"merchant_name": "First writer"}))

        with pytest.raises(ConflictError) as exc_info:
            store.save(second.model_copy(update={"merchant_name": "Second writer"}))

        assert exc_info.value.expected_version == saved.version
        assert exc_info.value.actual_version == saved.version + 1
        current = store.get("doc-a")
        assert current is not None
        assert current.merchant_name == "First writer"

    def test_insert_over_existing_conflicts(
        self, store: InMemoryDocumentStore, make_document: Callable[..., Document]
    ) -> None:
        store.save(make_document(document_id="doc-a"))

        with pytest.raises(ConflictError):
            store.save(make_document(document_id="doc-a"))

    def test_returned_copies_are_detached(
        self, store: InMemoryDocumentStore, make_document: Callable[..., Document]
    ) -> None:
        store.save(make_document(document_id="doc-a"))
        fetched = store.get("doc-a")
        assert fetched is not None

        fetched.merchant_name = "Mutated locally"

        again = store.get("doc-a")
        assert again is not None
        assert again.merchant_name != "Mutated locally"


class TestFind:
    def test_sorted_by_expiration_ascending(
        self, store: InMemoryDocumentStore, make_document: Callable[..., Document]
    ) -> None:
        for days in (20, 5, 12):
            store.save(make_document(days, document_id=f"doc-{days}"))

        found = store.find(DocumentQuery())

        assert [d.document_id for d in found] == ["doc-5", "doc-12", "doc-20"]

    def test_date_range_is_inclusive(
        self,
        store: InMemoryDocumentStore,
        make_document: Callable[..., Document],
        now: datetime,
    ) -> None:
        store.save(make_document(0, document_id="at-now"))
        store.save(make_document(30, document_id="at-end"))
        store.save(make_document(31, document_id="beyond"))

        found = store.find(DocumentQuery(expires_from=now, expires_to=now + timedelta(days=30)))

        assert [d.document_id for d in found] == ["at-now", "at-end"]

    def test_status_filters(
        self, store: InMemoryDocumentStore, make_document: Callable[..., Document]
    ) -> None:
        store.save(make_document(status=DocumentStatus.VALID, document_id="valid"))
        store.save(make_document(status=DocumentStatus.EXPIRED, document_id="expired"))

        kept = store.find(DocumentQuery(statuses=frozenset({DocumentStatus.VALID})))
        dropped = store.find(DocumentQuery(exclude_statuses=frozenset({DocumentStatus.VALID})))

        assert [d.document_id for d in kept] == ["valid"]
        assert [d.document_id for d in dropped] == ["expired"]
        assert store.count_by(DocumentQuery()) == 2
