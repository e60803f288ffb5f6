"""Tests for document mutations: date rules and status re-derivation."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from pcitrack.errors import DocumentValidationError
from pcitrack.extraction.service import ExtractedFields
from pcitrack.lifecycle.mutations import (
    apply_extraction,
    apply_manual_validation,
    create_document,
    update_dates,
)
from pcitrack.models.document import (
    ComplianceLevel,
    DocumentStatus,
    DocumentType,
    ValidationMethod,
)

NOW = datetime(2024, 1, 15, tzinfo=UTC)


def _create(**overrides):
    values = {
        "merchant_name": "Acme Payments",
        "document_type": DocumentType.AOC,
        "issue_date": datetime(2023, 6, 1, tzinfo=UTC),
        "expiration_date": datetime(2024, 6, 1, tzinfo=UTC),
        "now": NOW,
    }
    values.update(overrides)
    return create_document(**values)


class TestCreateDocument:
    def test_new_document_derives_status(self) -> None:
        document = _create()

        assert document.status == DocumentStatus.PENDING_REVIEW
        assert document.version == 0
        assert document.document_id

    def test_near_expiry_document_starts_expiring_soon(self) -> None:
        document = _create(expiration_date=NOW + timedelta(days=10))

        assert document.status == DocumentStatus.EXPIRING_SOON

    def test_accepts_document_type_string(self) -> None:
        document = _create(document_type="SAQ-D")

        assert document.document_type == DocumentType.SAQ_D

    def test_rejects_missing_issue_date(self) -> None:
        with pytest.raises(DocumentValidationError) as exc_info:
            _create(issue_date=None)

        assert exc_info.value.field == "issue_date"

    def test_rejects_expiration_not_after_issue(self) -> None:
        same = datetime(2024, 3, 1, tzinfo=UTC)

        with pytest.raises(DocumentValidationError) as exc_info:
            _create(issue_date=same, expiration_date=same)

        assert exc_info.value.field == "expiration_date"

    def test_naive_dates_are_taken_as_utc(self) -> None:
        document = _create(issue_date=datetime(2023, 6, 1))

        assert document.issue_date == datetime(2023, 6, 1, tzinfo=UTC)
        assert document.issue_date.tzinfo is not None

    def test_naive_misordered_dates_raise_validation_error(self) -> None:
        with pytest.raises(DocumentValidationError) as exc_info:
            _create(
                issue_date=datetime(2024, 7, 1),
                expiration_date=datetime(2024, 6, 1, tzinfo=UTC),
            )

        assert exc_info.value.field == "expiration_date"

    def test_rejects_unknown_document_type(self) -> None:
        with pytest.raises(DocumentValidationError):
            _create(document_type="NOT-A-TYPE")


class TestUpdateDates:
    def test_moving_expiration_into_window_rederives(self) -> None:
        document = apply_manual_validation(_create(), is_valid=True, now=NOW)
        assert document.status == DocumentStatus.VALID

        updated = update_dates(document, now=NOW, expiration_date=NOW + timedelta(days=5))

        assert updated.status == DocumentStatus.EXPIRING_SOON
        assert document.status == DocumentStatus.VALID

    def test_rejected_update_leaves_document_untouched(self) -> None:
        document = _create()

        with pytest.raises(DocumentValidationError):
            update_dates(document, now=NOW, expiration_date=datetime(2020, 1, 1, tzinfo=UTC))

        assert document.expiration_date == datetime(2024, 6, 1, tzinfo=UTC)

    def test_naive_expiration_is_stored_as_utc(self) -> None:
        document = _create()

        updated = update_dates(document, now=NOW, expiration_date=datetime(2025, 6, 1))

        assert updated.expiration_date == datetime(2025, 6, 1, tzinfo=UTC)
        assert updated.expiration_date.tzinfo is not None
        assert updated.status == DocumentStatus.PENDING_REVIEW

    def test_naive_expiration_before_issue_raises_validation_error(self) -> None:
        document = _create()

        with pytest.raises(DocumentValidationError):
            update_dates(document, now=NOW, expiration_date=datetime(2023, 1, 1))


class TestManualValidation:
    def test_invalid_verdict(self) -> None:
        document = apply_manual_validation(_create(), is_valid=False, now=NOW, notes="unsigned")

        assert document.status == DocumentStatus.INVALID
        assert document.validation_result is not None
        assert document.validation_result.method == ValidationMethod.MANUAL
        assert document.validation_result.notes == "unsigned"

    def test_keeps_previously_extracted_data(self) -> None:
        fields = ExtractedFields(
            merchant_name="Acme Payments",
            issue_date="2023-06-01",
            expiration_date="2024-06-01",
            pci_version="4.0",
        )
        extracted = apply_extraction(_create(), fields, now=NOW)

        reviewed = apply_manual_validation(extracted, is_valid=True, now=NOW)

        assert reviewed.validation_result is not None
        assert reviewed.validation_result.extracted_data["pci_version"] == "4.0"


class TestApplyExtraction:
    def test_complete_extraction_is_valid(self) -> None:
        fields = ExtractedFields(
            merchant_name="Acme Payments Ltd",
            issue_date="2023-07-01",
            expiration_date="2024-07-01",
            pci_version="4.0",
            compliance_level="Level 2",
            is_signed=True,
        )

        document = apply_extraction(_create(), fields, now=NOW)

        assert document.status == DocumentStatus.VALID
        assert document.merchant_name == "Acme Payments Ltd"
        assert document.compliance_level == ComplianceLevel.LEVEL_2
        assert document.is_signed is True
        assert document.expiration_date == datetime(2024, 7, 1, tzinfo=UTC)
        assert document.validation_result is not None
        assert document.validation_result.method == ValidationMethod.AUTOMATIC

    def test_missing_required_field_is_invalid(self) -> None:
        fields = ExtractedFields(
            merchant_name="Acme Payments",
            issue_date="2023-07-01",
            expiration_date="2024-07-01",
            pci_version="Not specified",
        )

        document = apply_extraction(_create(), fields, now=NOW)

        assert document.status == DocumentStatus.INVALID
        assert document.validation_result is not None
        assert "pci_version" in document.validation_result.notes
        assert document.pci_version == ""

    def test_conflicting_dates_keep_stored_dates(self) -> None:
        fields = ExtractedFields(
            merchant_name="Acme Payments",
            expiration_date="2023-01-01",
            pci_version="4.0",
        )

        document = apply_extraction(_create(), fields, now=NOW)

        assert document.expiration_date == datetime(2024, 6, 1, tzinfo=UTC)
        assert document.status == DocumentStatus.INVALID
