"""Tests for the Ollama vendor."""

import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from app.core.errors import ProtocolError, TransportError, VendorCapabilityError
from app.services.llm.base import FunctionDefinition, Message, ModelParams
from app.services.llm.ollama import OllamaVendor, _parse_timestamp, ollama_chat_payload
from tests.conftest import mock_http

TAGS = {"models": [
    {"name": "llama2:13b", "modified_at": "2023-11-04T14:56:49.277302595-07:00", "size": 7365960935,
     "digest": "9f438cb9cd581fc025612d27f7c1a6669ff83a8bb0ed86c94fcf4c5440555697"},
    {"name": "mystery:latest", "modified_at": "2023-12-01T10:00:00Z", "size": 3825819519,
     "digest": "fe938a131f40e6f6d40083c9f0f430a515233eb2edaa6d72eb85c50d64f2300e"},
]}


def test_chat_payload_builds_transcript():
    history = [
        Message("system", "Be brief."),
        Message("user", "Hi"),
        Message("assistant", "Hello!"),
        Message("user", "How are you?"),
    ]
    payload = ollama_chat_payload(ModelParams("llama2", temperature=0.5), history)
    assert payload == {
        "model": "llama2",
        "prompt": "\n\nHuman: Hi\n\nAssistant: Hello!\n\nHuman: How are you?\n\nAssistant:\n",
        "options": {"temperature": 0.5},
        "stream": False,
        "system": "Be brief.",
    }


def test_chat_payload_without_system_message():
    payload = ollama_chat_payload(ModelParams("llama2"), [Message("user", "Hi")])
    assert "system" not in payload
    assert payload["options"] == {}


def test_call_chat():
    def handler(request):
        assert request.url.path == "/api/generate"
        return httpx.Response(200, json={"model": "llama2", "response": "I am fine.", "done": True})

    vendor = OllamaVendor()
    with mock_http(handler):
        result = asyncio.run(vendor.call_chat(vendor.get_access({}), ModelParams("llama2"), [Message("user", "Hi")]))
    assert result.content == "I am fine."
    assert result.finish_reason == "stop"


def test_function_calling_is_not_supported():
    vendor = OllamaVendor()
    with pytest.raises(VendorCapabilityError):
        asyncio.run(vendor.call_chat_with_functions(
            vendor.get_access({}), ModelParams("llama2"), [Message("user", "Hi")], [FunctionDefinition("f", "")]
        ))


def test_list_models_degrades_when_details_fail():
    def handler(request):
        if request.url.path == "/api/tags":
            return httpx.Response(200, json=TAGS)
        name = json.loads(request.content)["name"]
        if name == "llama2:13b":
            return httpx.Response(200, json={
                "license": "LLAMA 2 COMMUNITY LICENSE AGREEMENT",
                "modelfile": "FROM llama2:13b",
                "parameters": "num_ctx 8192\nstop \"[INST]\"",
                "template": "[INST] {{ .Prompt }} [/INST]",
            })
        raise httpx.ConnectError("connection reset by peer")

    vendor = OllamaVendor()
    with mock_http(handler):
        models = asyncio.run(vendor.list_models(vendor.get_access({"ollama_host": "http://127.0.0.1:11434"})))

    assert [m.id for m in models] == ["llama2:13b", "mystery:latest"]
    llama, mystery = models
    assert llama.label == "Llama2 · 13b"
    assert llama.context_window == 8192
    assert llama.description == "The most popular model for general use."
    assert mystery.label == "Mystery"
    assert mystery.context_window == 4096
    assert mystery.description == "Model unknown"
    assert mystery.created == int(datetime(2023, 12, 1, 10, tzinfo=timezone.utc).timestamp())


def test_list_models_fails_when_listing_fails():
    def handler(request):
        return httpx.Response(503, text="starting up")

    vendor = OllamaVendor()
    with mock_http(handler), pytest.raises(TransportError):
        asyncio.run(vendor.list_models(vendor.get_access({})))


def test_parse_timestamp_with_nanoseconds():
    expected = int(datetime(2023, 11, 4, 21, 56, 49, tzinfo=timezone.utc).timestamp())
    assert _parse_timestamp("2023-11-04T14:56:49.277302595-07:00") == expected
    assert _parse_timestamp("yesterday") is None


def test_pull_keeps_last_status_and_error():
    def handler(request):
        lines = [{"status": "pulling manifest"}, {"error": "pull model manifest: file does not exist"}]
        return httpx.Response(200, text="\n".join(json.dumps(line) for line in lines))

    vendor = OllamaVendor()
    with mock_http(handler):
        result = asyncio.run(vendor.pull_model(vendor.get_access({}), "nonexistent"))
    assert result.status == "nonexistent: pulling manifest"
    assert result.error == "pull model manifest: file does not exist"


def test_delete_model():
    responses = iter([httpx.Response(200, text=""), httpx.Response(200, text="{\"error\": \"busy\"}")])

    def handler(request):
        assert request.method == "DELETE"
        assert json.loads(request.content) == {"name": "mistral"}
        return next(responses)

    vendor = OllamaVendor()
    with mock_http(handler):
        asyncio.run(vendor.delete_model(vendor.get_access({}), "mistral"))
        with pytest.raises(ProtocolError) as excinfo:
            asyncio.run(vendor.delete_model(vendor.get_access({}), "mistral"))
    assert excinfo.value.vendor == "Ollama::delete"
