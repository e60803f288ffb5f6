"""Domain models for PCI Tracker."""

from pcitrack.models.document import (
    ComplianceLevel,
    Document,
    DocumentStatus,
    DocumentType,
    NotificationChannel,
    NotificationClaim,
    NotificationKind,
    NotificationOutcome,
    NotificationRecord,
    ValidationMethod,
    ValidationResult,
)
from pcitrack.models.user import (
    ChatPreferences,
    EmailFrequency,
    EmailPreferences,
    NotificationPreferences,
    User,
    UserRole,
)

__all__ = [
    "ChatPreferences",
    "ComplianceLevel",
    "Document",
    "DocumentStatus",
    "DocumentType",
    "EmailFrequency",
    "EmailPreferences",
    "NotificationChannel",
    "NotificationClaim",
    "NotificationKind",
    "NotificationOutcome",
    "NotificationPreferences",
    "NotificationRecord",
    "User",
    "UserRole",
    "ValidationMethod",
    "ValidationResult",
]
