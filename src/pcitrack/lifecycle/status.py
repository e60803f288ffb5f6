"""Status derivation for compliance documents.

derive_status() is the single source of truth for a document's lifecycle
status. Rules are evaluated in priority order, first match wins:

  1. now > expiration_date                      -> EXPIRED
  2. days_remaining(expiration_date, now) <= N  -> EXPIRING_SOON
  3. validation_result.is_valid is False        -> INVALID
  4. validation_result.is_valid is True         -> VALID
  5. otherwise                                  -> PENDING_REVIEW

The comparison in rule 1 is strict: at the exact expiration instant the
document is still EXPIRING_SOON.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Final

from pcitrack.models.document import DocumentStatus, ValidationMethod

if TYPE_CHECKING:
    from pcitrack.models.document import Document, ValidationResult

DEFAULT_EXPIRING_SOON_THRESHOLD_DAYS: Final[int] = 30

_ONE_DAY_SECONDS: Final[float] = timedelta(days=1).total_seconds()


def days_remaining(expiration_date: datetime, now: datetime) -> int:
    """Whole days until expiration, rounded up.

    Args:
        expiration_date: Expiration instant.
        now: Reference instant.

    Returns:
        ceil((expiration_date - now) / 1 day). Zero at the expiration instant,
        negative once expired.

    Example:
        >>> from datetime import datetime, UTC
        >>> days_remaining(datetime(2024, 1, 30, tzinfo=UTC), datetime(2024, 1, 15, tzinfo=UTC))
        15
    """
    return math.ceil((expiration_date - now).total_seconds() / _ONE_DAY_SECONDS)


def is_expired(expiration_date: datetime, now: datetime) -> bool:
    """True once now is strictly past the expiration instant."""
    return now > expiration_date


def is_expiring_soon(
    expiration_date: datetime,
    now: datetime,
    threshold_days: int = DEFAULT_EXPIRING_SOON_THRESHOLD_DAYS,
) -> bool:
    """True when not expired and within threshold_days of expiring."""
    return not is_expired(expiration_date, now) and (
        days_remaining(expiration_date, now) <= threshold_days
    )


def _validation_verdict(validation_result: ValidationResult | None) -> bool | None:
    """Return the explicit validity verdict, or None when never validated."""
    if validation_result is None or validation_result.method == ValidationMethod.NONE:
        return None
    return validation_result.is_valid


def derive_status(
    expiration_date: datetime,
    validation_result: ValidationResult | None,
    now: datetime,
    expiring_soon_threshold_days: int = DEFAULT_EXPIRING_SOON_THRESHOLD_DAYS,
) -> DocumentStatus:
    """Compute a document's lifecycle status.

    Pure: no side effects, same inputs always give the same status.

    Args:
        expiration_date: Expiration instant of the document.
        validation_result: Latest validation outcome, if any.
        now: Reference instant.
        expiring_soon_threshold_days: Size of the "expiring soon" window.

    Returns:
        The derived DocumentStatus.
    """
    if is_expired(expiration_date, now):
        return DocumentStatus.EXPIRED

    if days_remaining(expiration_date, now) <= expiring_soon_threshold_days:
        return DocumentStatus.EXPIRING_SOON

    verdict = _validation_verdict(validation_result)
    if verdict is False:
        return DocumentStatus.INVALID
    if verdict is True:
        return DocumentStatus.VALID

    return DocumentStatus.PENDING_REVIEW


def derive_document_status(
    document: Document,
    now: datetime,
    expiring_soon_threshold_days: int = DEFAULT_EXPIRING_SOON_THRESHOLD_DAYS,
) -> DocumentStatus:
    """derive_status() applied to a Document's own fields."""
    return derive_status(
        document.expiration_date,
        document.validation_result,
        now,
        expiring_soon_threshold_days,
    )
