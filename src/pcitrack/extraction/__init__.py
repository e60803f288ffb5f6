"""Extraction contract for automatic document validation."""

from pcitrack.extraction.service import (
    DeterministicExtractionClient,
    ExtractedFields,
    ExtractionCheck,
    ExtractionService,
    check_extracted_fields,
)

__all__ = [
    "DeterministicExtractionClient",
    "ExtractedFields",
    "ExtractionCheck",
    "ExtractionService",
    "check_extracted_fields",
]
