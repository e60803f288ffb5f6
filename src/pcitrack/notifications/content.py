"""Notification content: subject and body strings for each message kind.

Bodies are plain text. The SMTP transport derives an HTML alternative and
the Slack transport wraps the body in a section block.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pcitrack.models.document import Document


@dataclass(frozen=True)
class RenderedMessage:
    """A subject/body pair ready for dispatch."""

    subject: str
    body: str


def _format_date(value: datetime) -> str:
    return value.strftime("%Y-%m-%d")


def document_link(frontend_url: str, document_id: str) -> str:
    """Deep link to a document in the web frontend."""
    return f"{frontend_url.rstrip('/')}/documents/{document_id}"


def expiration_subject(merchant_name: str, days_remaining: int) -> str:
    """Subject line of an expiration alert."""
    if days_remaining <= 0:
        return f"Alert: PCI document of {merchant_name} has expired"
    return f"Alert: PCI document of {merchant_name} expires in {days_remaining} days"


def render_expiration(
    document: Document, days_remaining: int, frontend_url: str
) -> RenderedMessage:
    """Render the expiration alert for one document."""
    if days_remaining <= 0:
        headline = (
            f"The PCI-DSS {document.document_type.value} document of "
            f"{document.merchant_name} expired on {_format_date(document.expiration_date)}."
        )
    else:
        headline = (
            f"The PCI-DSS {document.document_type.value} document of "
            f"{document.merchant_name} expires in {days_remaining} days "
            f"({_format_date(document.expiration_date)})."
        )

    lines = [
        headline,
        "",
        f"Merchant: {document.merchant_name}",
        f"Document type: {document.document_type.value}",
        f"PCI version: {document.pci_version or 'not specified'}",
        f"Issue date: {_format_date(document.issue_date)}",
        f"Expiration date: {_format_date(document.expiration_date)}",
        f"Status: {document.status.value}",
        "",
        "Please request an updated document from the merchant.",
        f"View document: {document_link(frontend_url, document.document_id)}",
    ]
    return RenderedMessage(
        subject=expiration_subject(document.merchant_name, days_remaining),
        body="\n".join(lines),
    )


def render_weekly_digest(
    generated_at: datetime,
    statistics: dict[str, int],
    upcoming: list[dict[str, Any]],
    frontend_url: str,
    window_days: int = 30,
) -> RenderedMessage:
    """Render the weekly administrator digest.

    Args:
        generated_at: Report instant.
        statistics: Status value -> count, plus "total".
        upcoming: Upcoming expiration rows as produced by the weekly report job.
        frontend_url: Base URL for the dashboard link.
        window_days: Look-ahead window the upcoming rows were selected with.
    """
    lines = [
        f"PCI-DSS compliance report for the week of {_format_date(generated_at)}",
        "",
        "Document statistics:",
        f"  Total: {statistics.get('total', 0)}",
    ]
    for key, count in statistics.items():
        if key != "total":
            lines.append(f"  {key}: {count}")

    lines.append("")
    if upcoming:
        lines.append(f"Upcoming expirations (next {window_days} days):")
        for row in upcoming:
            assignee = row.get("assigned_to_name") or "unassigned"
            lines.append(
                f"  - {row['merchant_name']} ({row['document_type']}): "
                f"expires {row['expiration_date'][:10]}, {row['status']}, {assignee}"
            )
    else:
        lines.append(f"No documents expire in the next {window_days} days.")

    lines.extend(["", f"Dashboard: {frontend_url.rstrip('/')}/dashboard"])
    return RenderedMessage(
        subject=f"Weekly PCI-DSS compliance report - {_format_date(generated_at)}",
        body="\n".join(lines),
    )
