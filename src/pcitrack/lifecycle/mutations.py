"""Document mutations that touch dates or validation.

Every function here enforces the date-ordering rule at the mutation boundary
(raising DocumentValidationError, nothing is persisted) and returns a new
Document whose status has been re-derived. Callers save the returned copy;
there is no storage-layer hook that recomputes status behind their back.
Naive datetimes are taken as UTC before any comparison.
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from pcitrack.errors import DocumentValidationError
from pcitrack.extraction.service import (
    ExtractedFields,
    check_extracted_fields,
    is_specified,
)
from pcitrack.lifecycle.status import (
    DEFAULT_EXPIRING_SOON_THRESHOLD_DAYS,
    derive_status,
)
from pcitrack.models.document import (
    ComplianceLevel,
    Document,
    DocumentStatus,
    DocumentType,
    ValidationMethod,
    ValidationResult,
    ensure_utc,
)

logger = logging.getLogger(__name__)

_LEVEL_PATTERN = re.compile(r"([1-4])")


def _check_dates(issue_date: datetime | None, expiration_date: datetime | None) -> None:
    """Raise DocumentValidationError unless both dates exist and are ordered."""
    if issue_date is None:
        raise DocumentValidationError("issue_date is required", field="issue_date")
    if expiration_date is None:
        raise DocumentValidationError("expiration_date is required", field="expiration_date")
    if expiration_date <= issue_date:
        raise DocumentValidationError(
            "expiration_date must be after issue_date", field="expiration_date"
        )


def _rederive(document: Document, now: datetime, threshold_days: int) -> Document:
    """Return a copy of document with status recomputed."""
    now = ensure_utc(now)
    status = derive_status(
        document.expiration_date, document.validation_result, now, threshold_days
    )
    return document.model_copy(update={"status": status, "updated_at": now})


def create_document(
    *,
    merchant_name: str,
    document_type: DocumentType | str,
    issue_date: datetime | None,
    expiration_date: datetime | None,
    now: datetime,
    document_id: str | None = None,
    expiring_soon_threshold_days: int = DEFAULT_EXPIRING_SOON_THRESHOLD_DAYS,
    **attributes: Any,
) -> Document:
    """Build a new document in PENDING_REVIEW and derive its real status.

    Args:
        merchant_name: Merchant the artifact belongs to.
        document_type: DocumentType (or its string value).
        issue_date: Issue instant (required).
        expiration_date: Expiration instant (required, after issue_date).
        now: Reference instant for status derivation.
        document_id: Optional id; a UUID4 is generated when omitted.
        expiring_soon_threshold_days: "Expiring soon" window.
        **attributes: Other Document fields (merchant_id, pci_version, ...).

    Returns:
        The new Document (not yet saved).

    Raises:
        DocumentValidationError: Missing or mis-ordered dates, or any field
            rejected by the Document model.
    """
    issue_date = ensure_utc(issue_date)
    expiration_date = ensure_utc(expiration_date)
    _check_dates(issue_date, expiration_date)

    try:
        document = Document(
            document_id=document_id or str(uuid.uuid4()),
            merchant_name=merchant_name,
            document_type=document_type,
            issue_date=issue_date,
            expiration_date=expiration_date,
            status=DocumentStatus.PENDING_REVIEW,
            created_at=now,
            updated_at=now,
            **attributes,
        )
    except ValidationError as e:
        raise DocumentValidationError(f"Invalid document: {e.error_count()} field error(s)") from e

    return _rederive(document, now, expiring_soon_threshold_days)


def update_dates(
    document: Document,
    *,
    now: datetime,
    issue_date: datetime | None = None,
    expiration_date: datetime | None = None,
    expiring_soon_threshold_days: int = DEFAULT_EXPIRING_SOON_THRESHOLD_DAYS,
) -> Document:
    """Change one or both dates and re-derive status.

    Raises:
        DocumentValidationError: If the resulting dates are mis-ordered.
    """
    new_issue = ensure_utc(issue_date or document.issue_date)
    new_expiration = ensure_utc(expiration_date or document.expiration_date)
    _check_dates(new_issue, new_expiration)

    updated = document.model_copy(
        update={"issue_date": new_issue, "expiration_date": new_expiration}
    )
    return _rederive(updated, now, expiring_soon_threshold_days)


def apply_manual_validation(
    document: Document,
    *,
    is_valid: bool,
    now: datetime,
    notes: str = "",
    expiring_soon_threshold_days: int = DEFAULT_EXPIRING_SOON_THRESHOLD_DAYS,
) -> Document:
    """Record a reviewer's verdict, keeping previously extracted data."""
    previous = document.validation_result
    result = ValidationResult(
        is_valid=is_valid,
        method=ValidationMethod.MANUAL,
        notes=notes,
        validated_at=now,
        extracted_data=dict(previous.extracted_data) if previous else {},
    )
    updated = document.model_copy(update={"validation_result": result})
    return _rederive(updated, now, expiring_soon_threshold_days)


def _parse_compliance_level(raw: str) -> ComplianceLevel | None:
    """Map free-form level text ("Level 2", "Nivel 2", "2") to ComplianceLevel."""
    text = raw.strip().upper().replace(" ", "_")
    if text in ComplianceLevel.__members__:
        return ComplianceLevel[text]
    match = _LEVEL_PATTERN.search(raw)
    if match:
        return ComplianceLevel[f"LEVEL_{match.group(1)}"]
    return None


def apply_extraction(
    document: Document,
    fields: ExtractedFields,
    *,
    now: datetime,
    expiring_soon_threshold_days: int = DEFAULT_EXPIRING_SOON_THRESHOLD_DAYS,
) -> Document:
    """Fill a document from an extraction and record an AUTOMATIC result.

    Extracted values only overwrite document fields when they carry
    information. Dates are taken only when the resulting pair stays ordered;
    otherwise the stored dates are kept and the problem is noted.

    Args:
        document: Document being processed.
        fields: Provider output.
        now: Reference instant.
        expiring_soon_threshold_days: "Expiring soon" window.

    Returns:
        Updated Document with a fresh validation result and derived status.
    """
    check = check_extracted_fields(fields)
    updates: dict[str, Any] = {}

    text_fields = (
        "merchant_name",
        "merchant_id",
        "pci_version",
        "evaluator_name",
        "evaluator_company",
    )
    for name in text_fields:
        value = getattr(fields, name)
        if is_specified(value):
            updates[name] = value.strip()

    if fields.is_signed is not None:
        updates["is_signed"] = fields.is_signed

    if is_specified(fields.compliance_level):
        assert fields.compliance_level is not None
        level = _parse_compliance_level(fields.compliance_level)
        if level is not None:
            updates["compliance_level"] = level

    new_issue = ensure_utc(check.issue_date or document.issue_date)
    new_expiration = ensure_utc(check.expiration_date or document.expiration_date)
    if new_expiration > new_issue:
        updates["issue_date"] = new_issue
        updates["expiration_date"] = new_expiration
    elif check.is_valid:
        check.fail("Extracted dates conflict with stored dates")

    updates["validation_result"] = ValidationResult(
        is_valid=check.is_valid,
        method=ValidationMethod.AUTOMATIC,
        notes=", ".join(check.errors),
        validated_at=now,
        extracted_data=fields.model_dump(mode="json", exclude_none=True),
    )

    logger.info(
        "Applied extraction to document %s: valid=%s errors=%d",
        document.document_id,
        check.is_valid,
        len(check.errors),
    )
    return _rederive(document.model_copy(update=updates), now, expiring_soon_threshold_days)
