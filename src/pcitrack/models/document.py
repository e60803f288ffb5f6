"""Document model for PCI-DSS compliance artifacts.

A Document records one compliance artifact (AOC, SAQ, ASV report...) with its
validity window, derived lifecycle status, validation outcome and an
append-only log of notification attempts.

status is never authoritative on its own: it is always recomputable from
expiration_date + validation_result + the clock (see lifecycle.status).
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class DocumentType(StrEnum):
    """PCI-DSS artifact type."""

    AOC = "AOC"
    SAQ_A = "SAQ-A"
    SAQ_A_EP = "SAQ-A-EP"
    SAQ_B = "SAQ-B"
    SAQ_B_IP = "SAQ-B-IP"
    SAQ_C = "SAQ-C"
    SAQ_C_VT = "SAQ-C-VT"
    SAQ_D = "SAQ-D"
    ASV = "ASV"
    P2PE = "P2PE"
    OTHER = "OTHER"


class ComplianceLevel(StrEnum):
    """Merchant compliance level."""

    LEVEL_1 = "LEVEL_1"
    LEVEL_2 = "LEVEL_2"
    LEVEL_3 = "LEVEL_3"
    LEVEL_4 = "LEVEL_4"
    NOT_APPLICABLE = "NOT_APPLICABLE"


class DocumentStatus(StrEnum):
    """Derived lifecycle status."""

    PENDING_REVIEW = "PENDING_REVIEW"
    VALID = "VALID"
    EXPIRING_SOON = "EXPIRING_SOON"
    EXPIRED = "EXPIRED"
    INVALID = "INVALID"


class ValidationMethod(StrEnum):
    """How a validation result was produced."""

    MANUAL = "MANUAL"
    AUTOMATIC = "AUTOMATIC"
    NONE = "NONE"


class NotificationKind(StrEnum):
    """Event a notification is about.

    EXPIRATION covers reminders ahead of the expiration date; EXPIRED is the
    one-off notice sent when a document transitions into EXPIRED.
    """

    EXPIRATION = "EXPIRATION"
    EXPIRED = "EXPIRED"
    REMINDER = "REMINDER"
    UPDATE = "UPDATE"
    OTHER = "OTHER"


class NotificationChannel(StrEnum):
    """Delivery channel of a notification attempt."""

    EMAIL = "EMAIL"
    CHAT = "CHAT"


class NotificationOutcome(StrEnum):
    """Result of a single delivery attempt."""

    SENT = "SENT"
    FAILED = "FAILED"


def ensure_utc(v: Any) -> Any:
    """Attach UTC to naive datetimes so comparisons never mix aware/naive."""
    if isinstance(v, datetime) and v.tzinfo is None:
        return v.replace(tzinfo=UTC)
    return v


class ValidationResult(BaseModel):
    """Outcome of a manual review or automatic extraction."""

    is_valid: bool | None = Field(default=None, description="None when not yet validated")
    method: ValidationMethod = Field(default=ValidationMethod.NONE)
    notes: str = Field(default="")
    validated_at: datetime | None = Field(default=None)
    extracted_data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("validated_at", mode="before")
    @classmethod
    def validate_validated_at(cls, v: Any) -> Any:
        """Normalize to an aware UTC datetime."""
        return ensure_utc(v)

    model_config = {"frozen": True, "extra": "forbid"}


class NotificationRecord(BaseModel):
    """One delivery attempt. Records are appended, never rewritten."""

    kind: NotificationKind
    timestamp: datetime
    channel: NotificationChannel
    recipient: str = Field(..., min_length=1)
    outcome: NotificationOutcome
    message: str = Field(default="")

    @field_validator("timestamp", mode="before")
    @classmethod
    def validate_timestamp(cls, v: Any) -> Any:
        """Normalize to an aware UTC datetime."""
        return ensure_utc(v)

    model_config = {"frozen": True, "extra": "forbid"}


class NotificationClaim(BaseModel):
    """Marker that one job run owns the right to send a notification kind.

    Written with a version-checked save before any channel is called, and
    cleared together with the appended outcome records.
    """

    kind: NotificationKind
    holder: str = Field(..., min_length=1)
    claimed_at: datetime

    @field_validator("claimed_at", mode="before")
    @classmethod
    def validate_claimed_at(cls, v: Any) -> Any:
        """Normalize to an aware UTC datetime."""
        return ensure_utc(v)

    model_config = {"frozen": True, "extra": "forbid"}


class Document(BaseModel):
    """A tracked compliance artifact.

    version is an optimistic-concurrency counter: stores reject a save whose
    version does not match the persisted one, and bump it on success.
    """

    document_id: str = Field(..., description="Unique document id")
    merchant_name: str = Field(..., min_length=1)
    merchant_id: str | None = Field(default=None)
    document_type: DocumentType = Field(...)
    pci_version: str = Field(default="")
    compliance_level: ComplianceLevel = Field(default=ComplianceLevel.NOT_APPLICABLE)
    evaluator_name: str | None = Field(default=None)
    evaluator_company: str | None = Field(default=None)
    is_signed: bool = Field(default=False)
    file_name: str | None = Field(default=None)

    issue_date: datetime = Field(...)
    expiration_date: datetime = Field(...)
    status: DocumentStatus = Field(default=DocumentStatus.PENDING_REVIEW)
    validation_result: ValidationResult | None = Field(default=None)
    notifications: list[NotificationRecord] = Field(default_factory=list)
    notification_claim: NotificationClaim | None = Field(default=None)
    assigned_to: str | None = Field(default=None, description="Reviewing user id")

    version: int = Field(default=0, ge=0)
    created_at: datetime | None = Field(default=None)
    updated_at: datetime | None = Field(default=None)

    @field_validator("document_id", mode="before")
    @classmethod
    def validate_document_id(cls, v: Any) -> str:
        """Validate document_id is a non-empty string."""
        if not isinstance(v, str) or not v.strip():
            raise ValueError("document_id must be a non-empty string")
        return v

    @field_validator("issue_date", "expiration_date", "created_at", "updated_at", mode="before")
    @classmethod
    def validate_datetimes(cls, v: Any) -> Any:
        """Normalize to an aware UTC datetime."""
        return ensure_utc(v)

    @model_validator(mode="after")
    def validate_date_order(self) -> Document:
        """expiration_date must be strictly after issue_date."""
        if self.expiration_date <= self.issue_date:
            raise ValueError("expiration_date must be after issue_date")
        return self

    def to_db_dict(self) -> dict[str, Any]:
        """Convert to dictionary for database insertion."""
        return {
            "document_id": self.document_id,
            "merchant_name": self.merchant_name,
            "merchant_id": self.merchant_id,
            "document_type": self.document_type.value,
            "pci_version": self.pci_version,
            "compliance_level": self.compliance_level.value,
            "evaluator_name": self.evaluator_name,
            "evaluator_company": self.evaluator_company,
            "is_signed": self.is_signed,
            "file_name": self.file_name,
            "issue_date": self.issue_date,
            "expiration_date": self.expiration_date,
            "status": self.status.value,
            "validation_result": (
                self.validation_result.model_dump(mode="json") if self.validation_result else None
            ),
            "notifications": [n.model_dump(mode="json") for n in self.notifications],
            "notification_claim": (
                self.notification_claim.model_dump(mode="json")
                if self.notification_claim
                else None
            ),
            "assigned_to": self.assigned_to,
            "version": self.version,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    model_config = {"frozen": False, "extra": "forbid"}
