"""Tests for notification subjects and bodies."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

from pcitrack.models.document import Document
from pcitrack.notifications.content import (
    document_link,
    expiration_subject,
    render_expiration,
    render_weekly_digest,
)


def test_expiration_subject_counts_days() -> None:
    assert expiration_subject("Acme", 12) == "Alert: PCI document of Acme expires in 12 days"


def test_expiration_subject_expired() -> None:
    assert expiration_subject("Acme", 0) == "Alert: PCI document of Acme has expired"


def test_document_link_strips_trailing_slash() -> None:
    assert document_link("https://pci.example.com/", "doc-1") == (
        "https://pci.example.com/documents/doc-1"
    )


def test_render_expiration_body(make_document: Callable[..., Document]) -> None:
    document = make_document(12, document_id="doc-1", merchant_name="Acme")

    message = render_expiration(document, 12, "https://pci.example.com")

    assert "expires in 12 days (2024-01-27)" in message.body
    assert "Document type: AOC" in message.body
    assert "PCI version: 4.0" in message.body
    assert message.body.endswith("View document: https://pci.example.com/documents/doc-1")


def test_render_expired_body(make_document: Callable[..., Document]) -> None:
    document = make_document(-1, merchant_name="Acme")

    message = render_expiration(document, 0, "https://pci.example.com")

    assert message.subject == "Alert: PCI document of Acme has expired"
    assert "expired on 2024-01-14" in message.body


def test_weekly_digest_lists_upcoming() -> None:
    generated_at = datetime(2024, 1, 15, 8, 0, tzinfo=UTC)
    rows = [
        {
            "merchant_name": "Acme",
            "document_type": "AOC",
            "expiration_date": "2024-01-20T00:00:00Z",
            "status": "EXPIRING_SOON",
            "assigned_to_name": None,
        }
    ]

    message = render_weekly_digest(
        generated_at, {"VALID": 3, "total": 3}, rows, "https://pci.example.com"
    )

    assert message.subject == "Weekly PCI-DSS compliance report - 2024-01-15"
    assert "  Total: 3" in message.body
    assert "  VALID: 3" in message.body
    assert "  - Acme (AOC): expires 2024-01-20, EXPIRING_SOON, unassigned" in message.body
    assert message.body.endswith("Dashboard: https://pci.example.com/dashboard")


def test_weekly_digest_without_upcoming() -> None:
    message = render_weekly_digest(
        datetime(2024, 1, 15, tzinfo=UTC), {"total": 0}, [], "https://pci.example.com"
    )

    assert "No documents expire in the next 30 days." in message.body
