"""
Unit tests for ElasticsearchLocationStore against a mocked client.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from elasticsearch import BadRequestError

from errors.codes import ErrorCode
from errors.exceptions import AppException
from storage.elasticsearch_store import (
    INSERTION_ORDER,
    LATEST_FIRST,
    LOCATIONS_MAPPING,
    ElasticsearchLocationStore,
    serialize_document,
    token_query,
)


NOW = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


def make_hit(doc_id="es-doc-1", **source):
    body = {
        "token": "a",
        "latitude": 12.5,
        "longitude": 77.1,
        "accuracy": None,
        "timestamp": "2024-01-15T10:30:00+00:00",
        "created_at": "2024-01-15T10:30:00+00:00",
    }
    body.update(source)
    return {"_id": doc_id, "_source": body}


@pytest.fixture
def store(mock_es_client):
    return ElasticsearchLocationStore(client=mock_es_client, index="locations", telemetry=MagicMock())


class TestHelpers:

    def test_token_query_for_token(self):
        assert token_query("a") == {"term": {"token": "a"}}

    def test_token_query_for_missing_token(self):
        assert token_query(None) == {"bool": {"must_not": {"exists": {"field": "token"}}}}

    def test_serialize_document_formats_datetimes(self):
        assert serialize_document({"timestamp": NOW, "latitude": 1.0}) == {
            "timestamp": "2024-01-15T10:30:00+00:00",
            "latitude": 1.0,
        }


class TestConstruction:

    def test_requires_endpoint_or_client(self):
        with pytest.raises(ValueError):
            ElasticsearchLocationStore(telemetry=MagicMock())


class TestEnsureIndex:

    @pytest.mark.asyncio
    async def test_existing_index_is_not_recreated(self, store, mock_es_client):
        await store.ensure_index()

        mock_es_client.indices.exists.assert_called_once_with(index="locations")
        mock_es_client.indices.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_index_is_created_with_mapping(self, store, mock_es_client):
        mock_es_client.indices.exists.return_value = False

        await store.ensure_index()

        mock_es_client.indices.create.assert_called_once_with(
            index="locations", mappings=LOCATIONS_MAPPING
        )

    @pytest.mark.asyncio
    async def test_concurrent_creation_is_tolerated(self, store, mock_es_client):
        mock_es_client.indices.exists.return_value = False
        mock_es_client.indices.create.side_effect = BadRequestError(
            "resource_already_exists_exception", meta=MagicMock(status=400), body={}
        )

        await store.ensure_index()

    @pytest.mark.asyncio
    async def test_other_create_errors_propagate(self, store, mock_es_client):
        mock_es_client.indices.exists.return_value = False
        mock_es_client.indices.create.side_effect = ConnectionError("refused")

        with pytest.raises(AppException) as exc_info:
            await store.ensure_index()

        assert exc_info.value.error_code == ErrorCode.STORAGE_ERROR

    @pytest.mark.asyncio
    async def test_index_is_checked_once(self, store, mock_es_client):
        await store.find()
        await store.find()

        assert mock_es_client.indices.exists.call_count == 1


class TestOperations:

    @pytest.mark.asyncio
    async def test_insert_returns_document_id(self, store, mock_es_client):
        doc_id = await store.insert({"token": "a", "latitude": 1.0, "longitude": 2.0, "timestamp": NOW})

        assert doc_id == "es-doc-1"
        kwargs = mock_es_client.index.call_args.kwargs
        assert kwargs["index"] == "locations"
        assert kwargs["refresh"] == "wait_for"
        assert kwargs["document"]["timestamp"] == "2024-01-15T10:30:00+00:00"

    @pytest.mark.asyncio
    async def test_find_latest_queries_newest_first(self, store, mock_es_client):
        mock_es_client.search.return_value = {"hits": {"hits": [make_hit()]}}

        sample = await store.find_latest("a")

        assert sample.id == "es-doc-1"
        assert sample.latitude == 12.5
        assert sample.timestamp == NOW
        mock_es_client.search.assert_called_once_with(
            index="locations", query={"term": {"token": "a"}}, sort=LATEST_FIRST, size=1
        )

    @pytest.mark.asyncio
    async def test_find_latest_without_hits(self, store):
        assert await store.find_latest(None) is None

    @pytest.mark.asyncio
    async def test_find_all_uses_match_all(self, store, mock_es_client):
        mock_es_client.search.return_value = {
            "hits": {"hits": [make_hit("1"), make_hit("2", token=None)]}
        }

        samples = await store.find()

        assert [s.id for s in samples] == ["1", "2"]
        assert samples[1].token is None
        kwargs = mock_es_client.search.call_args.kwargs
        assert kwargs["query"] == {"match_all": {}}
        assert kwargs["sort"] == INSERTION_ORDER
        assert kwargs["size"] == 10000

    @pytest.mark.asyncio
    async def test_find_by_token(self, store, mock_es_client):
        await store.find("b")

        assert mock_es_client.search.call_args.kwargs["query"] == {"term": {"token": "b"}}

    @pytest.mark.asyncio
    async def test_delete_all(self, store, mock_es_client):
        mock_es_client.delete_by_query.return_value = {"deleted": 3}

        assert await store.delete_all() == 3
        kwargs = mock_es_client.delete_by_query.call_args.kwargs
        assert kwargs["query"] == {"match_all": {}}
        assert kwargs["refresh"] is True

    @pytest.mark.asyncio
    async def test_client_failure_becomes_storage_error(self, store, mock_es_client):
        mock_es_client.search.side_effect = ConnectionError("connection refused")

        with pytest.raises(AppException) as exc_info:
            await store.find_latest("a")

        error = exc_info.value
        assert error.error_code == ErrorCode.STORAGE_ERROR
        assert error.status_code == 500
        assert error.message == "server error"
        assert "connection refused" in error.details["error"]
        assert error.to_dict() == {"ok": False, "error": "server error"}


class TestHealth:

    @pytest.mark.asyncio
    async def test_healthy_when_ping_succeeds(self, store):
        assert await store.health_check() is True

    @pytest.mark.asyncio
    async def test_unhealthy_when_ping_fails(self, store, mock_es_client):
        mock_es_client.ping.return_value = False
        assert await store.health_check() is False

    @pytest.mark.asyncio
    async def test_unhealthy_when_ping_raises(self, store, mock_es_client):
        mock_es_client.ping.side_effect = ConnectionError("down")
        assert await store.health_check() is False

    @pytest.mark.asyncio
    async def test_close_closes_client(self, store, mock_es_client):
        await store.close()
        mock_es_client.close.assert_called_once()
