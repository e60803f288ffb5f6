"""Document lifecycle: status derivation and status-preserving mutations."""

from pcitrack.lifecycle.mutations import (
    apply_extraction,
    apply_manual_validation,
    create_document,
    update_dates,
)
from pcitrack.lifecycle.status import (
    DEFAULT_EXPIRING_SOON_THRESHOLD_DAYS,
    days_remaining,
    derive_document_status,
    derive_status,
    is_expired,
    is_expiring_soon,
)

__all__ = [
    "DEFAULT_EXPIRING_SOON_THRESHOLD_DAYS",
    "apply_extraction",
    "apply_manual_validation",
    "create_document",
    "days_remaining",
    "derive_document_status",
    "derive_status",
    "is_expired",
    "is_expiring_soon",
    "update_dates",
]
