"""
Location store abstraction.

The ingestion service only ever talks to a LocationStore. Implementations
wrap a real backend (Elasticsearch) or keep samples in process memory for
development and tests.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from ingestion.models import LocationSample


class LocationStore(ABC):
    """
    Abstract base class for location sample storage.

    All methods are async. Any backend failure must surface as the
    STORAGE_ERROR AppException (see ``errors.exceptions.storage_error``)
    so the HTTP layer can answer with a generic 500.
    """

    name: str = "store"

    async def ensure_index(self) -> None:
        """
        Prepare the backing collection (create indices, mappings).

        Called once at startup. Stores with nothing to prepare keep the
        default no-op.
        """
        return None

    @abstractmethod
    async def insert(self, document: dict[str, Any]) -> str:
        """
        Persist one sample document.

        Args:
            document: Mapping with token, latitude, longitude, accuracy,
                timestamp and created_at (datetimes are timezone-aware).

        Returns:
            The store-assigned id of the new sample.
        """
        pass

    @abstractmethod
    async def find_latest(self, token: Optional[str]) -> Optional[LocationSample]:
        """
        Return the most recently stored sample for ``token``.

        A ``None`` token matches samples stored without a token. Ordering is
        by created_at descending, ties broken by the latest timestamp.
        """
        pass

    @abstractmethod
    async def find(self, token: Optional[str] = None) -> list[LocationSample]:
        """
        Return stored samples in insertion order.

        Args:
            token: When given, only samples with exactly this token.
        """
        pass

    @abstractmethod
    async def delete_all(self) -> int:
        """Delete every sample. Returns the number deleted."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check connectivity to the backend.

        Must not raise; connectivity problems return False.
        """
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None
