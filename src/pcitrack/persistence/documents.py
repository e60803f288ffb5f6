"""Document store: in-memory and Postgres implementations.

Both implementations share one contract:

- get(document_id) -> Document | None
- find(query) -> list[Document], sorted by expiration_date ascending
- count_by(query) -> int
- save(document) -> Document

save() is a compare-and-swap on Document.version. A document with version 0
is inserted; any other version must equal the stored one. On success the
returned copy carries version + 1; on mismatch ConflictError is raised and
nothing is written. Callers re-fetch and retry, or give up on that document.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol

from sqlalchemy import text

from pcitrack.errors import ConflictError, DocumentNotFoundError
from pcitrack.models.document import Document, DocumentStatus

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentQuery:
    """Filter for find/count_by. Unset fields do not constrain.

    Attributes:
        statuses: Keep only these statuses.
        exclude_statuses: Drop these statuses.
        expires_from: Inclusive lower bound on expiration_date.
        expires_to: Inclusive upper bound on expiration_date.
    """

    statuses: frozenset[DocumentStatus] | None = None
    exclude_statuses: frozenset[DocumentStatus] | None = None
    expires_from: datetime | None = None
    expires_to: datetime | None = None

    def matches(self, document: Document) -> bool:
        """True when document passes every set filter."""
        if self.statuses is not None and document.status not in self.statuses:
            return False
        if self.exclude_statuses is not None and document.status in self.exclude_statuses:
            return False
        if self.expires_from is not None and document.expiration_date < self.expires_from:
            return False
        if self.expires_to is not None and document.expiration_date > self.expires_to:
            return False
        return True


class DocumentStore(Protocol):
    """Persistence interface used by lifecycle jobs."""

    def get(self, document_id: str) -> Document | None:
        """Fetch one document, or None."""
        ...

    def find(self, query: DocumentQuery) -> list[Document]:
        """Documents matching query, by expiration_date ascending."""
        ...

    def count_by(self, query: DocumentQuery) -> int:
        """Number of documents matching query."""
        ...

    def save(self, document: Document) -> Document:
        """Version-checked insert/update.

        Raises:
            ConflictError: If the stored version differs from document.version.
        """
        ...


def _sort_key(document: Document) -> tuple[datetime, str]:
    return (document.expiration_date, document.document_id)


class InMemoryDocumentStore:
    """Thread-safe in-memory store for development and tests.

    Documents are deep-copied on the way in and out, so a caller holding a
    fetched copy sees the same staleness it would see against a database.
    """

    def __init__(self, documents: list[Document] | None = None) -> None:
        self._lock = threading.Lock()
        self._documents: dict[str, Document] = {}
        for document in documents or []:
            self.save(document)

    def get(self, document_id: str) -> Document | None:
        """Fetch one document, or None."""
        with self._lock:
            stored = self._documents.get(document_id)
            return stored.model_copy(deep=True) if stored is not None else None

    def find(self, query: DocumentQuery) -> list[Document]:
        """Documents matching query, by expiration_date ascending."""
        with self._lock:
            matched = [d for d in self._documents.values() if query.matches(d)]
            return [d.model_copy(deep=True) for d in sorted(matched, key=_sort_key)]

    def count_by(self, query: DocumentQuery) -> int:
        """Number of documents matching query."""
        with self._lock:
            return sum(1 for d in self._documents.values() if query.matches(d))

    def save(self, document: Document) -> Document:
        """Version-checked insert/update."""
        with self._lock:
            stored = self._documents.get(document.document_id)
            actual = stored.version if stored is not None else 0
            if document.version != actual:
                raise ConflictError(document.document_id, document.version, actual)

            now = datetime.now(UTC)
            saved = document.model_copy(
                deep=True,
                update={
                    "version": actual + 1,
                    "created_at": document.created_at or now,
                    "updated_at": document.updated_at or now,
                },
            )
            self._documents[document.document_id] = saved
            return saved.model_copy(deep=True)

    def clear(self) -> None:
        """Remove every document. For testing only."""
        with self._lock:
            self._documents.clear()


_DOCUMENT_COLUMNS = """
    document_id, merchant_name, merchant_id, document_type, pci_version,
    compliance_level, evaluator_name, evaluator_company, is_signed, file_name,
    issue_date, expiration_date, status, validation_result, notifications,
    notification_claim, assigned_to, version, created_at, updated_at
"""


def _build_where(query: DocumentQuery) -> tuple[str, dict[str, Any]]:
    """Translate a DocumentQuery into a WHERE clause and bind params."""
    clauses: list[str] = []
    params: dict[str, Any] = {}

    if query.statuses is not None:
        clauses.append("status = ANY(:statuses)")
        params["statuses"] = sorted(s.value for s in query.statuses)
    if query.exclude_statuses is not None:
        clauses.append("NOT (status = ANY(:exclude_statuses))")
        params["exclude_statuses"] = sorted(s.value for s in query.exclude_statuses)
    if query.expires_from is not None:
        clauses.append("expiration_date >= :expires_from")
        params["expires_from"] = query.expires_from
    if query.expires_to is not None:
        clauses.append("expiration_date <= :expires_to")
        params["expires_to"] = query.expires_to

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params


def _row_to_document(row: Any) -> Document:
    """Convert database row to Document."""
    data = dict(row._mapping)
    for key in ("validation_result", "notification_claim"):
        if isinstance(data.get(key), str):
            data[key] = json.loads(data[key])
    if isinstance(data.get("notifications"), str):
        data["notifications"] = json.loads(data["notifications"])
    data["notifications"] = data.get("notifications") or []
    return Document.model_validate(data)


def _json_params(db_dict: dict[str, Any]) -> dict[str, Any]:
    """Serialize JSONB-bound values of a to_db_dict() mapping."""
    params = dict(db_dict)
    for key in ("validation_result", "notifications", "notification_claim"):
        params[key] = json.dumps(params[key]) if params[key] is not None else None
    return params


class PostgresDocumentStore:
    """Postgres-backed document store.

    Every call runs in its own short transaction. The version check happens
    inside the UPDATE's WHERE clause, so two concurrent writers cannot both
    succeed from the same base version.
    """

    def __init__(self, engine: Engine) -> None:
        """Initialize with a SQLAlchemy engine."""
        self._engine = engine

    def get(self, document_id: str) -> Document | None:
        """Fetch one document, or None."""
        with self._engine.connect() as conn:
            row = conn.execute(
                text(f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE document_id = :document_id"),
                {"document_id": document_id},
            ).fetchone()
        return _row_to_document(row) if row is not None else None

    def find(self, query: DocumentQuery) -> list[Document]:
        """Documents matching query, by expiration_date ascending."""
        where, params = _build_where(query)
        with self._engine.connect() as conn:
            rows = conn.execute(
                text(
                    f"SELECT {_DOCUMENT_COLUMNS} FROM documents {where} "
                    "ORDER BY expiration_date ASC, document_id ASC"
                ),
                params,
            ).fetchall()
        return [_row_to_document(row) for row in rows]

    def count_by(self, query: DocumentQuery) -> int:
        """Number of documents matching query."""
        where, params = _build_where(query)
        with self._engine.connect() as conn:
            result = conn.execute(text(f"SELECT COUNT(*) FROM documents {where}"), params)
            return int(result.scalar_one())

    def save(self, document: Document) -> Document:
        """Version-checked insert/update."""
        now = datetime.now(UTC)
        expected = document.version
        saved = document.model_copy(
            update={
                "version": expected + 1,
                "created_at": document.created_at or now,
                "updated_at": document.updated_at or now,
            }
        )
        params = _json_params(saved.to_db_dict())
        params["expected_version"] = expected

        with self._engine.begin() as conn:
            if expected == 0:
                result = conn.execute(
                    text(
                        f"""
                        INSERT INTO documents ({_DOCUMENT_COLUMNS})
                        VALUES (
                            :document_id, :merchant_name, :merchant_id, :document_type,
                            :pci_version, :compliance_level, :evaluator_name,
                            :evaluator_company, :is_signed, :file_name, :issue_date,
                            :expiration_date, :status, CAST(:validation_result AS JSONB),
                            CAST(:notifications AS JSONB), CAST(:notification_claim AS JSONB),
                            :assigned_to, :version, :created_at, :updated_at
                        )
                        ON CONFLICT (document_id) DO NOTHING
                        """
                    ),
                    params,
                )
            else:
                result = conn.execute(
                    text(
                        """
                        UPDATE documents SET
                            merchant_name = :merchant_name,
                            merchant_id = :merchant_id,
                            document_type = :document_type,
                            pci_version = :pci_version,
                            compliance_level = :compliance_level,
                            evaluator_name = :evaluator_name,
                            evaluator_company = :evaluator_company,
                            is_signed = :is_signed,
                            file_name = :file_name,
                            issue_date = :issue_date,
                            expiration_date = :expiration_date,
                            status = :status,
                            validation_result = CAST(:validation_result AS JSONB),
                            notifications = CAST(:notifications AS JSONB),
                            notification_claim = CAST(:notification_claim AS JSONB),
                            assigned_to = :assigned_to,
                            version = :version,
                            updated_at = :updated_at
                        WHERE document_id = :document_id AND version = :expected_version
                        """
                    ),
                    params,
                )

            if result.rowcount == 1:
                return saved

            actual_row = conn.execute(
                text("SELECT version FROM documents WHERE document_id = :document_id"),
                {"document_id": document.document_id},
            ).fetchone()

        if actual_row is None:
            raise DocumentNotFoundError(document.document_id)
        raise ConflictError(document.document_id, expected, int(actual_row.version))
