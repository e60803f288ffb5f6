"""Error taxonomy for PCI Tracker.

All domain errors derive from PciTrackError so that the HTTP layer and the
scheduler can map them without catching bare exceptions.

- DocumentValidationError: rejected at the mutation boundary, never persisted
- ConflictError: optimistic-concurrency version mismatch on save
- DispatchFailure: a notification channel call failed or timed out
- NotFoundError: unknown job name, or a referenced document/user is missing
"""

from __future__ import annotations


class PciTrackError(Exception):
    """Base exception for PCI Tracker errors."""

    code = "INTERNAL_ERROR"


class DocumentValidationError(PciTrackError):
    """Raised when a document mutation violates a field or date rule."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class ConflictError(PciTrackError):
    """Raised when a save finds a newer version than the one it was based on."""

    code = "CONFLICT"

    def __init__(self, document_id: str, expected_version: int, actual_version: int | None) -> None:
        self.document_id = document_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Document {document_id} version conflict: "
            f"expected {expected_version}, found {actual_version}"
        )


class DispatchFailure(PciTrackError):
    """Raised by a notification channel when delivery fails."""

    code = "DISPATCH_FAILED"

    def __init__(self, channel: str, recipient: str, detail: str) -> None:
        self.channel = channel
        self.recipient = recipient
        self.detail = detail
        super().__init__(f"{channel} delivery to {recipient} failed: {detail}")


class NotFoundError(PciTrackError):
    """Raised when a named resource does not exist."""

    code = "NOT_FOUND"


class DocumentNotFoundError(NotFoundError):
    """Raised when a document id is unknown to the store."""

    def __init__(self, document_id: str) -> None:
        self.document_id = document_id
        super().__init__(f"Document {document_id} not found")


class JobNotFoundError(NotFoundError):
    """Raised when a manual run names a job that is not registered."""

    def __init__(self, job_name: str, known: list[str] | None = None) -> None:
        self.job_name = job_name
        self.known = sorted(known or [])
        super().__init__(f"Unknown job: {job_name}")
