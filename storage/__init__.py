"""
Storage backends for location samples.

``create_location_store`` picks the backend named by ``settings.store_type``.
"""

from typing import Any

from storage.store import LocationStore
from storage.memory_store import InMemoryLocationStore
from storage.elasticsearch_store import ElasticsearchLocationStore


def create_location_store(settings: Any) -> LocationStore:
    """Build the LocationStore selected by the settings."""
    if settings.store_type == "memory":
        return InMemoryLocationStore()
    return ElasticsearchLocationStore.from_settings(settings)


__all__ = [
    "LocationStore",
    "InMemoryLocationStore",
    "ElasticsearchLocationStore",
    "create_location_store",
]
