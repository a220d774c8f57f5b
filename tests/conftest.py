import warnings
from datetime import datetime

warnings.filterwarnings(
    "ignore",
    category=DeprecationWarning,
    message=r".*on_event is deprecated.*",
)

import pytest
from fastapi.testclient import TestClient

from memory_garden.dependencies.services import Services, build_services, get_services
from memory_garden.services.analysis_cache import AnalysisCache
from memory_garden.services.classifier import ClassifierSettings
from memory_garden.storage import InMemoryRepository
from tests.fixtures.completions import CountingCompletion
from tests.fixtures.factories import FIXED_NOW
from tests.fixtures.redis_mock import MockRedisClient


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def settings() -> ClassifierSettings:
    return ClassifierSettings(
        api_key="test-key",
        base_url="http://nim.invalid/v1",
        model="test/model",
        batch_size=2,
        batch_delay_ms=0,
    )


@pytest.fixture
def redis_stub() -> MockRedisClient:
    return MockRedisClient()


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def completion() -> CountingCompletion:
    return CountingCompletion()


@pytest.fixture
def services(repository, settings, completion) -> Services:
    return build_services(
        repository,
        AnalysisCache(),
        settings,
        completion_fn=completion,
        now=lambda: FIXED_NOW,
    )


@pytest.fixture
def api_client(services: Services) -> TestClient:
    from memory_garden.app import app

    app.dependency_overrides[get_services] = lambda: services
    try:
        with TestClient(app) as client:
            yield client
    finally:
        app.dependency_overrides.clear()
