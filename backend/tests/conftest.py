"""Shared test fixtures for backend tests."""

from unittest.mock import patch

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from app.services.llm.base import DLLM
from app.services.stores.llms import ModelStore

# In-memory SQLite with StaticPool so all connections (including threads) share one DB
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@pytest.fixture(autouse=True)
def setup_test_db():
    """Create all tables before each test, drop after."""
    import app.models  # noqa: F401 - register models
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def client():
    """FastAPI TestClient backed by the in-memory database."""
    with (
        patch("app.core.database.engine", test_engine),
        patch("app.services.persistence.engine", test_engine),
    ):
        from app.main import app

        with TestClient(app) as c:
            yield c


@pytest.fixture
def context(client):
    """The stores of the running test app."""
    return client.app.state.context


def mock_http(handler):
    """Route every vendor HTTP call through `handler(request) -> httpx.Response`."""
    return patch(
        "app.services.llm.transport.http_client",
        lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def add_test_llm(models: ModelStore, vendor_id: str = "ollama", model_id: str = "llama2:latest") -> DLLM:
    """Register a source of `vendor_id` with one LLM on it."""
    source_id = models.add_source(vendor_id)
    llm = DLLM(
        id=f"{source_id}-{model_id}",
        label=model_id,
        created=0,
        description="test model",
        context_tokens=4096,
        source_id=source_id,
        options={"llm_ref": model_id, "llm_temperature": 0.5, "llm_response_tokens": 512},
    )
    models.add_llms([llm])
    return llm
