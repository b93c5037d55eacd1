"""
In-process location store.

Used for local development (``STORE_TYPE=memory``) and as the test double
for the ingestion service. Samples are lost when the process exits.
"""

import copy
import uuid
from typing import Any, Optional

from ingestion.models import LocationSample
from storage.store import LocationStore


class InMemoryLocationStore(LocationStore):
    """
    LocationStore kept in a Python list, in insertion order.

    Attributes:
        documents: (id, document) pairs in the order they were inserted
    """

    name = "memory"

    def __init__(self):
        self.documents: list[tuple[str, dict[str, Any]]] = []

    async def insert(self, document: dict[str, Any]) -> str:
        sample_id = uuid.uuid4().hex
        self.documents.append((sample_id, copy.deepcopy(document)))
        return sample_id

    async def find_latest(self, token: Optional[str]) -> Optional[LocationSample]:
        candidates = [
            (position, sample_id, doc)
            for position, (sample_id, doc) in enumerate(self.documents)
            if doc.get("token") == token
        ]
        if not candidates:
            return None

        _, sample_id, doc = max(
            candidates,
            key=lambda c: (c[2]["created_at"], c[2]["timestamp"], c[0])
        )
        return _to_sample(sample_id, doc)

    async def find(self, token: Optional[str] = None) -> list[LocationSample]:
        return [
            _to_sample(sample_id, doc)
            for sample_id, doc in self.documents
            if token is None or doc.get("token") == token
        ]

    async def delete_all(self) -> int:
        deleted = len(self.documents)
        self.documents.clear()
        return deleted

    async def health_check(self) -> bool:
        return True


def _to_sample(sample_id: str, doc: dict[str, Any]) -> LocationSample:
    return LocationSample(
        id=sample_id,
        token=doc.get("token"),
        latitude=doc["latitude"],
        longitude=doc["longitude"],
        accuracy=doc.get("accuracy"),
        timestamp=doc["timestamp"],
    )
