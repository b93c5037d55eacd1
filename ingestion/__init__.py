"""
Location ingestion module.

This module provides validation for incoming location pings and the
service that deduplicates, stores, lists and clears them.
"""

from ingestion.models import (
    LocationSample,
    LocationSubmission,
    SubmitResult,
    validate_submission,
)
from ingestion.service import LocationIngestionService

__all__ = [
    "LocationIngestionService",
    "LocationSample",
    "LocationSubmission",
    "SubmitResult",
    "validate_submission",
]
