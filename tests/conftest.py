"""
Shared pytest fixtures and configuration for all tests.
"""
import os
from datetime import datetime, timedelta, timezone
from typing import Optional
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from hypothesis import settings, Verbosity, Phase

from config.settings import Settings
from ingestion.service import LocationIngestionService
from storage.memory_store import InMemoryLocationStore

# Hypothesis profiles; select with HYPOTHESIS_PROFILE
settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,  # Disable deadline for async tests
    print_blob=True,
)

settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    derandomize=True,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    phases=[Phase.explicit, Phase.reuse, Phase.generate],  # Skip shrinking for speed
)

settings.register_profile(
    "fast",
    max_examples=20,
    verbosity=Verbosity.normal,
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))


START_TIME = datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable time source for the ingestion service."""

    def __init__(self, start: datetime = START_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, milliseconds: int = 0, seconds: float = 0) -> None:
        self.now = self.now + timedelta(milliseconds=milliseconds, seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    """A clock frozen at START_TIME until advanced."""
    return FakeClock()


@pytest.fixture
def memory_store() -> InMemoryLocationStore:
    """An empty in-memory location store."""
    return InMemoryLocationStore()


@pytest.fixture
def ingestion_service(memory_store, clock) -> LocationIngestionService:
    """Ingestion service over the in-memory store and fake clock."""
    return LocationIngestionService(store=memory_store, clock=clock, telemetry=MagicMock())


@pytest.fixture
def app_settings(tmp_path) -> Settings:
    """Settings for an app backed by the in-memory store, without .env files."""
    return Settings(
        _env_file=None,
        store_type="memory",
        static_dir=str(tmp_path / "public"),
        log_level="DEBUG",
    )


def make_client(app_settings: Settings, store, clock: Optional[FakeClock] = None, **kwargs) -> TestClient:
    from main import create_app

    app = create_app(settings=app_settings, store=store, clock=clock)
    return TestClient(app, **kwargs)


@pytest.fixture
def client(app_settings, memory_store, clock) -> TestClient:
    """Test client for the full application over the in-memory store."""
    return make_client(app_settings, memory_store, clock)


@pytest.fixture
def client_factory(app_settings, clock):
    """Build a test client over an arbitrary store."""
    def factory(store, **kwargs) -> TestClient:
        return make_client(app_settings, store, clock, **kwargs)
    return factory


@pytest.fixture
def mock_es_client() -> MagicMock:
    """Create a mock Elasticsearch client for unit tests."""
    mock = MagicMock()
    mock.ping = MagicMock(return_value=True)
    mock.indices.exists = MagicMock(return_value=True)
    mock.indices.create = MagicMock(return_value={"acknowledged": True})
    mock.index = MagicMock(return_value={"_id": "es-doc-1", "result": "created"})
    mock.search = MagicMock(return_value={"hits": {"hits": [], "total": {"value": 0}}})
    mock.delete_by_query = MagicMock(return_value={"deleted": 0})
    return mock


@pytest.fixture
def sample_location_payload() -> dict:
    """Sample location ping body."""
    return {
        "token": "a",
        "latitude": 12.5,
        "longitude": 77.1,
        "accuracy": 15.0,
    }
