"""
Location ingestion service.

This module provides the LocationIngestionService class, which stores
location pings, suppresses near-identical consecutive pings per token,
lists stored samples and clears them.

The dedup lookup and the insert are two separate store calls. Two pings
for the same token racing inside the window can both be stored; duplicate
suppression is best-effort.
"""

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, TYPE_CHECKING

from ingestion.models import LocationSample, LocationSubmission, SubmitResult, as_utc
from telemetry.service import TelemetryService, get_telemetry_service

if TYPE_CHECKING:
    from storage.store import LocationStore


logger = logging.getLogger(__name__)


DEFAULT_DEDUP_WINDOW_MS = 5000

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LocationIngestionService:
    """
    Service for receiving, listing and clearing location samples.

    Attributes:
        store: LocationStore holding the samples
        clock: Callable returning the current UTC time
        dedup_window: Identical pings closer together than this are duplicates
        telemetry: Telemetry service for metrics
    """

    def __init__(
        self,
        store: "LocationStore",
        clock: Optional[Clock] = None,
        dedup_window_ms: int = DEFAULT_DEDUP_WINDOW_MS,
        telemetry: Optional[TelemetryService] = None,
    ):
        """
        Initialize the LocationIngestionService.

        Args:
            store: The location store
            clock: Time source, defaults to the system clock in UTC
            dedup_window_ms: Dedup window in milliseconds
            telemetry: Optional telemetry service (uses global if not provided)
        """
        self.store = store
        self.clock = clock or utc_now
        self.dedup_window = timedelta(milliseconds=dedup_window_ms)
        self.telemetry = telemetry or get_telemetry_service()

    def is_duplicate(
        self,
        previous: LocationSample,
        submission: LocationSubmission,
        timestamp: datetime,
    ) -> bool:
        """
        Decide whether a ping repeats the previous sample for its token.

        Coordinates must match exactly and the timestamps must be strictly
        less than the dedup window apart, in either direction.
        """
        return (
            previous.latitude == submission.latitude
            and previous.longitude == submission.longitude
            and abs(timestamp - previous.timestamp) < self.dedup_window
        )

    async def submit(self, submission: LocationSubmission) -> SubmitResult:
        """
        Store a validated ping unless it duplicates the token's latest sample.

        Args:
            submission: The validated ping

        Returns:
            SubmitResult with the new sample's id, or the existing sample's
            id and ``duplicate=True`` when suppressed

        Raises:
            AppException: STORAGE_ERROR if the store fails
        """
        start_time = time.perf_counter()
        now = as_utc(self.clock())
        timestamp = submission.timestamp or now

        previous = await self.store.find_latest(submission.token)
        if previous is not None and self.is_duplicate(previous, submission, timestamp):
            logger.info(
                f"Duplicate location suppressed for token {submission.token!r}",
                extra={"extra_data": {
                    "token": submission.token,
                    "existing_id": previous.id,
                    "latitude": submission.latitude,
                    "longitude": submission.longitude,
                }}
            )
            return SubmitResult(id=previous.id, duplicate=True)

        sample_id = await self.store.insert({
            "token": submission.token,
            "latitude": submission.latitude,
            "longitude": submission.longitude,
            "accuracy": submission.accuracy,
            "timestamp": timestamp,
            "created_at": now,
        })

        duration_ms = (time.perf_counter() - start_time) * 1000
        if self.telemetry:
            self.telemetry.record_metric("location_submit_duration_ms", duration_ms)

        logger.info(
            f"📌 Saved location {sample_id}",
            extra={"extra_data": {
                "id": sample_id,
                "token": submission.token,
                "latitude": submission.latitude,
                "longitude": submission.longitude,
                "accuracy": submission.accuracy,
                "timestamp": timestamp.isoformat(),
                "duration_ms": duration_ms,
            }}
        )

        return SubmitResult(id=sample_id)

    async def list_samples(self, token: Optional[str] = None) -> list[LocationSample]:
        """
        List stored samples in insertion order.

        Args:
            token: Only samples with this token; None or "" lists everything
        """
        return await self.store.find(token or None)

    async def clear(self) -> int:
        """Delete every stored sample. Returns the number deleted."""
        deleted = await self.store.delete_all()
        logger.info(
            f"Cleared {deleted} location samples",
            extra={"extra_data": {"deleted": deleted}}
        )
        return deleted
