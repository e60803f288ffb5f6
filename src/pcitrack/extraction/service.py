"""Extraction contract for automatic document validation.

The AI provider that reads a compliance artifact is an external collaborator.
This module fixes only the contract around it:

- ExtractionService: Protocol, extract(text, document_type) -> ExtractedFields
- ExtractedFields: the field set the provider returns
- check_extracted_fields(): required-field and date-ordering checks applied
  to every extraction before it is recorded as a validation result
- DeterministicExtractionClient: offline implementation for tests and demos
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Final, Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

REQUIRED_FIELDS: Final[tuple[str, ...]] = (
    "merchant_name",
    "issue_date",
    "expiration_date",
    "pci_version",
)

NOT_SPECIFIED_MARKERS: Final[frozenset[str]] = frozenset(
    {"", "not specified", "n/a", "none", "unknown", "no especificado"}
)


class ExtractedFields(BaseModel):
    """Fields an extraction provider returns for one artifact.

    Dates are kept as raw strings: providers are unreliable about format, and
    parsing failures are reported by check_extracted_fields() rather than by
    model validation.
    """

    merchant_name: str | None = None
    merchant_id: str | None = None
    issue_date: str | None = None
    expiration_date: str | None = None
    pci_version: str | None = None
    compliance_level: str | None = None
    evaluator_name: str | None = None
    evaluator_company: str | None = None
    is_signed: bool | None = None
    extra: dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "forbid"}


class ExtractionService(Protocol):
    """Provider-agnostic interface for structured field extraction."""

    def extract(self, text: str, document_type: str) -> ExtractedFields:
        """Extract structured fields from a document's text.

        Args:
            text: Plain text of the artifact.
            document_type: DocumentType value the artifact was filed under.

        Returns:
            ExtractedFields with whatever the provider could find.
        """
        ...


@dataclass
class ExtractionCheck:
    """Result of checking an extraction.

    Attributes:
        is_valid: True when no errors were found.
        errors: Human-readable problems, in detection order.
        issue_date: Parsed issue date, if present and parseable.
        expiration_date: Parsed expiration date, if present and parseable.
    """

    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    issue_date: datetime | None = None
    expiration_date: datetime | None = None

    def fail(self, message: str) -> None:
        """Record an error and mark the check invalid."""
        self.is_valid = False
        self.errors.append(message)


def is_specified(value: Any) -> bool:
    """True when a raw extracted value carries information."""
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip().lower() not in NOT_SPECIFIED_MARKERS
    return True


def parse_extracted_date(value: str) -> datetime | None:
    """Parse an ISO date/datetime string into an aware UTC datetime.

    Returns:
        Parsed datetime, or None if the value is not a valid ISO date.
    """
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def check_extracted_fields(fields: ExtractedFields) -> ExtractionCheck:
    """Check an extraction for required fields and coherent dates.

    Args:
        fields: Provider output.

    Returns:
        ExtractionCheck with collected errors and parsed dates.
    """
    check = ExtractionCheck()

    for name in REQUIRED_FIELDS:
        if not is_specified(getattr(fields, name)):
            check.fail(f"Required field not found: {name}")

    if is_specified(fields.issue_date):
        assert fields.issue_date is not None
        check.issue_date = parse_extracted_date(fields.issue_date)
        if check.issue_date is None:
            check.fail("Invalid issue date")

    if is_specified(fields.expiration_date):
        assert fields.expiration_date is not None
        check.expiration_date = parse_extracted_date(fields.expiration_date)
        if check.expiration_date is None:
            check.fail("Invalid expiration date")

    if (
        check.issue_date is not None
        and check.expiration_date is not None
        and check.expiration_date <= check.issue_date
    ):
        check.fail("Expiration date must be after issue date")

    return check


class DeterministicExtractionClient:
    """Offline extraction client that reads "Key: value" lines.

    Keys are matched case-insensitively against ExtractedFields names with
    spaces or dashes treated as underscores. Lines that do not map to a known
    field land in ExtractedFields.extra. No external calls are made.
    """

    _KNOWN = frozenset(ExtractedFields.model_fields) - {"extra"}

    def extract(self, text: str, document_type: str) -> ExtractedFields:
        """Extract fields from "Key: value" lines of text."""
        known: dict[str, Any] = {}
        extra: dict[str, Any] = {"document_type": document_type}

        for raw_line in text.splitlines():
            if ":" not in raw_line:
                continue
            key, value = raw_line.split(":", 1)
            name = key.strip().lower().replace(" ", "_").replace("-", "_")
            value = value.strip()
            if name in self._KNOWN:
                if name == "is_signed":
                    known[name] = value.lower() in ("yes", "true", "1", "si", "sí")
                else:
                    known[name] = value
            elif name:
                extra[name] = value

        logger.debug("Deterministic extraction found %d known fields", len(known))
        return ExtractedFields(**known, extra=extra)
