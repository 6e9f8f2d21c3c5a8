"""Tests for the shared vendor HTTP plumbing."""

import asyncio

import httpx
import pytest

from app.core.errors import ConfigurationError, ProtocolError, TransportError, describe_shape
from app.services.llm.transport import fetch_json, fixup_host, parse_ndjson, resolve_host
from tests.conftest import mock_http


def test_resolve_host_precedence():
    assert resolve_host("http://mine", "http://env", "http://default") == "http://mine"
    assert resolve_host("  ", "http://env", "http://default") == "http://env"
    assert resolve_host("", "", "http://default") == "http://default"


def test_fixup_host():
    assert fixup_host("localhost:11434", "/api/tags") == "https://localhost:11434"
    assert fixup_host("http://localhost:8080/", "/v1/models") == "http://localhost:8080"
    assert fixup_host("https://proxy.example.com/v1", "/v1/chat/completions") == "https://proxy.example.com"
    assert fixup_host("https://proxy.example.com/v1", "/api/tags") == "https://proxy.example.com/v1"
    assert fixup_host("httpbin.local:8080", "/get") == "https://httpbin.local:8080"


def test_fixup_host_without_host_is_rejected():
    with pytest.raises(ConfigurationError):
        fixup_host("https://", "/v1/models")


def test_fetch_json_error_status():
    def handler(request):
        return httpx.Response(401, text="invalid api key")

    with mock_http(handler), pytest.raises(TransportError) as excinfo:
        asyncio.run(fetch_json("https://api.example.com/v1/models", "GET", {}, None, "OpenAI"))
    assert excinfo.value.status_code == 401
    assert excinfo.value.vendor == "OpenAI"
    assert excinfo.value.path == "/v1/models"


def test_fetch_json_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    with mock_http(handler), pytest.raises(TransportError) as excinfo:
        asyncio.run(fetch_json("http://127.0.0.1:11434/api/tags", "GET", {}, None, "Ollama"))
    assert excinfo.value.status_code is None
    assert "connection refused" in str(excinfo.value)


def test_fetch_json_not_json():
    def handler(request):
        return httpx.Response(200, text="<html>proxy login</html>")

    with mock_http(handler), pytest.raises(ProtocolError):
        asyncio.run(fetch_json("http://127.0.0.1:11434/api/tags", "GET", {}, None, "Ollama"))


def test_parse_ndjson():
    records = parse_ndjson('{"status": "a"}\n\n{"status": "b"}\n', "Ollama::pull")
    assert [r["status"] for r in records] == ["a", "b"]

    with pytest.raises(ProtocolError):
        parse_ndjson('{"status": "a"}\nnot json', "Ollama::pull")


def test_describe_shape_hides_values():
    payload = {"choices": [{"message": {"content": "secret"}}], "id": "x", "usage": None}
    assert describe_shape(payload) == {"choices": ["object"], "id": "str", "usage": "null"}
