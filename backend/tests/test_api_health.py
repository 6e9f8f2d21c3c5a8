"""Tests for the health, capabilities and persona endpoints."""

from unittest.mock import patch

from app.core.config import settings


def test_health_returns_ok(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert "app" in data


def test_capabilities_follow_settings(client):
    with (
        patch.object(settings, "openai_api_key", "sk-server"),
        patch.object(settings, "openai_api_host", ""),
        patch.object(settings, "ollama_api_host", ""),
        patch.object(settings, "gemini_api_key", ""),
    ):
        response = client.get("/api/backend/capabilities")
    assert response.status_code == 200
    data = response.json()
    assert data["hasLlmOpenAI"] is True
    assert data["hasLlmOllama"] is False
    assert data["hasLlmGemini"] is False
    assert set(data) == {"hasDB", "hasLlmOpenAI", "hasLlmOllama", "hasLlmLocalAI", "hasLlmGemini"}


def test_personas_list_includes_default(client):
    response = client.get("/api/backend/personas")
    data = response.json()
    ids = [p["id"] for p in data["personas"]]
    assert data["default"] in ids
    assert "Developer" in ids
