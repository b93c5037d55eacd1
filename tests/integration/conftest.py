"""
Integration test configuration and fixtures.

API tests run against the in-memory store by default. Setting
TEST_USE_MOCK_ES=false together with TEST_ELASTIC_ENDPOINT runs the
Elasticsearch store tests against a real cluster, in a throwaway index.
"""
import os
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict

import pytest


logger = logging.getLogger(__name__)

TEST_ES_INDEX_PREFIX = "test_locations_"


@dataclass
class TestElasticsearchConfig:
    """
    Configuration for a test Elasticsearch instance.

    Environment Variables:
    - TEST_ELASTIC_ENDPOINT: Elasticsearch endpoint URL for testing
    - TEST_ELASTIC_API_KEY: API key for the test instance (optional)
    - TEST_USE_MOCK_ES: Set to "false" to use a real instance (default: "true")
    - TEST_ES_TIMEOUT: Request timeout in seconds (default: 30)
    """
    __test__ = False

    endpoint: str = field(default_factory=lambda: os.getenv("TEST_ELASTIC_ENDPOINT", ""))
    api_key: str = field(default_factory=lambda: os.getenv("TEST_ELASTIC_API_KEY", ""))
    use_mock: bool = field(default_factory=lambda: os.getenv("TEST_USE_MOCK_ES", "true").lower() == "true")
    timeout: int = field(default_factory=lambda: int(os.getenv("TEST_ES_TIMEOUT", "30")))

    @property
    def is_configured(self) -> bool:
        return bool(self.endpoint and not self.use_mock)

    def new_index_name(self) -> str:
        return f"{TEST_ES_INDEX_PREFIX}{uuid.uuid4().hex[:12]}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for logging."""
        return {
            "endpoint": self.endpoint[:20] + "..." if self.endpoint else "",
            "use_mock": self.use_mock,
            "timeout": self.timeout,
            "is_configured": self.is_configured,
        }


@pytest.fixture(scope="session")
def test_es_config() -> TestElasticsearchConfig:
    config = TestElasticsearchConfig()
    logger.info(f"Test ES Config: {config.to_dict()}")
    return config


@pytest.fixture
def real_es_store(test_es_config: TestElasticsearchConfig):
    """
    ElasticsearchLocationStore on a fresh index of a real cluster.

    Skipped unless TEST_USE_MOCK_ES=false and an endpoint is provided.
    The index is deleted afterwards.
    """
    if not test_es_config.is_configured:
        pytest.skip("Real Elasticsearch not configured. Set TEST_USE_MOCK_ES=false and TEST_ELASTIC_ENDPOINT.")

    from elasticsearch import Elasticsearch
    from storage.elasticsearch_store import ElasticsearchLocationStore

    client = Elasticsearch(
        test_es_config.endpoint,
        api_key=test_es_config.api_key or None,
        request_timeout=test_es_config.timeout,
    )
    if not client.ping():
        client.close()
        pytest.skip("Could not connect to test Elasticsearch instance")

    index_name = test_es_config.new_index_name()
    yield ElasticsearchLocationStore(client=client, index=index_name)

    try:
        client.indices.delete(index=index_name, ignore_unavailable=True)
        logger.info(f"Cleaned up test index: {index_name}")
    except Exception as e:
        logger.warning(f"Failed to cleanup index {index_name}: {e}")
    client.close()
