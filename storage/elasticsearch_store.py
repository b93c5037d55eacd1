"""
Elasticsearch-backed location store.

Samples live in a single index (``locations`` by default). Writes use
``refresh="wait_for"`` so the next dedup lookup or listing sees them.
The official client is synchronous, so every call runs in the default
executor to keep the event loop free.

Sorting on ``created_at`` and ``timestamp`` has millisecond resolution,
because Elasticsearch ``date`` fields store milliseconds. Two samples
inserted within the same millisecond are ordered by their ``timestamp``
rather than by arrival, and may tie completely.
"""

import asyncio
import functools
import logging
from datetime import datetime
from typing import Any, Callable, Optional

from elasticsearch import BadRequestError, Elasticsearch

from errors.exceptions import AppException, storage_error
from ingestion.models import LocationSample
from storage.store import LocationStore
from telemetry.service import TelemetryService, get_telemetry_service

logger = logging.getLogger(__name__)


LOCATIONS_MAPPING: dict[str, Any] = {
    "properties": {
        "token": {"type": "keyword"},
        "latitude": {"type": "double"},
        "longitude": {"type": "double"},
        "accuracy": {"type": "double"},
        "timestamp": {"type": "date"},
        "created_at": {"type": "date"},
    }
}

# Newest first for the dedup lookup, oldest first for listings
LATEST_FIRST = [
    {"created_at": {"order": "desc"}},
    {"timestamp": {"order": "desc"}},
]
INSERTION_ORDER = [
    {"created_at": {"order": "asc"}},
    {"timestamp": {"order": "asc"}},
]


def token_query(token: Optional[str]) -> dict[str, Any]:
    """Query matching samples with exactly ``token``; None matches tokenless samples."""
    if token is None:
        return {"bool": {"must_not": {"exists": {"field": "token"}}}}
    return {"term": {"token": token}}


def serialize_document(document: dict[str, Any]) -> dict[str, Any]:
    """Convert datetimes to ISO-8601 strings for indexing."""
    return {
        key: value.isoformat() if isinstance(value, datetime) else value
        for key, value in document.items()
    }


def hit_to_sample(hit: dict[str, Any]) -> LocationSample:
    source = hit["_source"]
    return LocationSample(
        id=hit["_id"],
        token=source.get("token"),
        latitude=source["latitude"],
        longitude=source["longitude"],
        accuracy=source.get("accuracy"),
        timestamp=source["timestamp"],
    )


class ElasticsearchLocationStore(LocationStore):
    """
    LocationStore over an Elasticsearch index.

    Attributes:
        client: The Elasticsearch client
        index: Name of the index holding samples
        max_list_size: Upper bound on hits returned by ``find``
    """

    name = "elasticsearch"

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        index: str = "locations",
        request_timeout: int = 30,
        max_list_size: int = 10000,
        client: Optional[Elasticsearch] = None,
        telemetry: Optional[TelemetryService] = None,
    ):
        """
        Initialize the store. No network traffic happens here.

        Args:
            endpoint: Elasticsearch URL, ignored when ``client`` is given
            api_key: Optional API key
            index: Index name
            request_timeout: Per-request timeout in seconds
            max_list_size: Maximum samples returned by a listing
            client: Pre-built client (tests inject a mock here)
            telemetry: Telemetry service for spans (uses global if not provided)
        """
        if client is None:
            if not endpoint:
                raise ValueError("endpoint is required when no client is given")
            client = Elasticsearch(
                endpoint,
                api_key=api_key,
                request_timeout=request_timeout,
            )
        self.client = client
        self.index = index
        self.max_list_size = max_list_size
        self.telemetry = telemetry or get_telemetry_service()
        self._index_ready = False

    @classmethod
    def from_settings(cls, settings: Any) -> "ElasticsearchLocationStore":
        return cls(
            endpoint=settings.elastic_endpoint,
            api_key=settings.elastic_api_key,
            index=settings.locations_index,
            request_timeout=settings.elastic_request_timeout,
            max_list_size=settings.max_list_size,
        )

    async def _call(self, operation: str, func: Callable[..., Any], **kwargs: Any) -> Any:
        """
        Run a client call in the executor, converting failures to STORAGE_ERROR.
        """
        span = (
            self.telemetry.create_external_service_span(
                "elasticsearch", operation, {"db.index": self.index}
            )
            if self.telemetry else None
        )
        try:
            loop = asyncio.get_running_loop()
            if span is None:
                return await loop.run_in_executor(None, functools.partial(func, **kwargs))
            with span:
                return await loop.run_in_executor(None, functools.partial(func, **kwargs))
        except Exception as e:
            logger.error(
                f"Elasticsearch {operation} failed: {e}",
                extra={"extra_data": {
                    "operation": operation,
                    "index": self.index,
                    "error": str(e),
                }}
            )
            raise storage_error(f"{operation}({self.index})", e) from e

    async def ensure_index(self) -> None:
        """Create the samples index with its mapping if it does not exist."""
        exists = await self._call("indices.exists", self.client.indices.exists, index=self.index)
        if exists:
            logger.info(f"📋 Index already exists: {self.index}")
        else:
            try:
                await self._call(
                    "indices.create",
                    self.client.indices.create,
                    index=self.index,
                    mappings=LOCATIONS_MAPPING,
                )
                logger.info(f"✅ Created index: {self.index}")
            except AppException as e:
                # Another worker created it between exists and create
                if not isinstance(e.__cause__, BadRequestError) or \
                        e.__cause__.error != "resource_already_exists_exception":
                    raise
        self._index_ready = True

    async def _ready(self) -> None:
        if not self._index_ready:
            await self.ensure_index()

    async def insert(self, document: dict[str, Any]) -> str:
        await self._ready()
        response = await self._call(
            "index",
            self.client.index,
            index=self.index,
            document=serialize_document(document),
            refresh="wait_for",
        )
        return response["_id"]

    async def find_latest(self, token: Optional[str]) -> Optional[LocationSample]:
        await self._ready()
        response = await self._call(
            "search",
            self.client.search,
            index=self.index,
            query=token_query(token),
            sort=LATEST_FIRST,
            size=1,
        )
        hits = response["hits"]["hits"]
        return hit_to_sample(hits[0]) if hits else None

    async def find(self, token: Optional[str] = None) -> list[LocationSample]:
        await self._ready()
        query = token_query(token) if token is not None else {"match_all": {}}
        response = await self._call(
            "search",
            self.client.search,
            index=self.index,
            query=query,
            sort=INSERTION_ORDER,
            size=self.max_list_size,
        )
        return [hit_to_sample(hit) for hit in response["hits"]["hits"]]

    async def delete_all(self) -> int:
        await self._ready()
        response = await self._call(
            "delete_by_query",
            self.client.delete_by_query,
            index=self.index,
            query={"match_all": {}},
            refresh=True,
            conflicts="proceed",
        )
        return response.get("deleted", 0)

    async def health_check(self) -> bool:
        try:
            return bool(await self._call("ping", self.client.ping))
        except AppException:
            return False

    async def close(self) -> None:
        self.client.close()
