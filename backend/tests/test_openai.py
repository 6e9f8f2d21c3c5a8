"""Tests for the OpenAI-compatible vendors: OpenAI, LocalAI and Oobabooga."""

import asyncio
import json
from unittest.mock import patch

import httpx
import pytest

from app.core.config import settings
from app.core.errors import ProtocolError
from app.services.llm.base import (
    DModelSource,
    FunctionCallResult,
    FunctionDefinition,
    FunctionParameter,
    Message,
    ModelParams,
)
from app.services.llm.localai import LocalAIVendor
from app.services.llm.oobabooga import OobaboogaVendor
from app.services.llm.openai import OpenAIVendor, openai_chat_payload
from tests.conftest import mock_http

HISTORY = [Message("system", "You are terse."), Message("user", "Hello")]


def _completion(message: dict, finish_reason: str = "stop") -> dict:
    return {"id": "chatcmpl-1", "choices": [{"index": 0, "message": message, "finish_reason": finish_reason}]}


def test_chat_payload():
    payload = openai_chat_payload(ModelParams("gpt-4", temperature=0.2, max_tokens=100), HISTORY)
    assert payload == {
        "model": "gpt-4",
        "messages": [{"role": "system", "content": "You are terse."}, {"role": "user", "content": "Hello"}],
        "n": 1,
        "stream": False,
        "temperature": 0.2,
        "max_tokens": 100,
    }


def test_call_chat_sends_credentials():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=_completion({"role": "assistant", "content": "Hi."}))

    vendor = OpenAIVendor()
    access = vendor.get_access({"oai_key": "sk-test", "oai_org": "org-1"})
    with mock_http(handler):
        result = asyncio.run(vendor.call_chat(access, ModelParams("gpt-4"), HISTORY))

    assert result.content == "Hi."
    assert result.finish_reason == "stop"
    assert result.role == "assistant"
    assert str(seen[0].url) == "https://api.openai.com/v1/chat/completions"
    assert seen[0].headers["Authorization"] == "Bearer sk-test"
    assert seen[0].headers["OpenAI-Organization"] == "org-1"


def test_call_chat_length_finish_reason():
    def handler(request):
        return httpx.Response(200, json=_completion({"role": "assistant", "content": "Hi"}, "length"))

    vendor = OpenAIVendor()
    with mock_http(handler):
        result = asyncio.run(vendor.call_chat(vendor.get_access({}), ModelParams("gpt-4"), HISTORY))
    assert result.finish_reason is None


def test_call_chat_with_functions():
    def handler(request):
        body = json.loads(request.content)
        assert body["functions"][0]["parameters"]["required"] == ["city"]
        assert "function_call" not in body
        return httpx.Response(200, json=_completion(
            {"role": "assistant", "content": None,
             "function_call": {"name": "get_weather", "arguments": "{\"city\": \"Oslo\"}"}},
            "function_call",
        ))

    functions = [FunctionDefinition("get_weather", "Current weather", [FunctionParameter("city", "string", "City")])]
    vendor = OpenAIVendor()
    with mock_http(handler):
        result = asyncio.run(
            vendor.call_chat_with_functions(vendor.get_access({}), ModelParams("gpt-4"), HISTORY, functions)
        )
    assert result == FunctionCallResult("get_weather", {"city": "Oslo"})


def test_function_arguments_must_be_an_object():
    def handler(request):
        return httpx.Response(200, json=_completion(
            {"role": "assistant", "function_call": {"name": "f", "arguments": "[1, 2]"}}, "function_call"
        ))

    vendor = OpenAIVendor()
    with mock_http(handler), pytest.raises(ProtocolError):
        asyncio.run(vendor.call_chat_with_functions(
            vendor.get_access({}), ModelParams("gpt-4"), HISTORY, [FunctionDefinition("f", "")]
        ))


def test_list_models_keeps_gpt_models_sorted():
    def handler(request):
        return httpx.Response(200, json={"object": "list", "data": [
            {"id": "gpt-4-32k-0613", "created": 1, "owned_by": "openai"},
            {"id": "dall-e-3", "created": 2, "owned_by": "system"},
            {"id": "gpt-3.5-turbo-16k", "created": 3, "owned_by": "openai"},
        ]})

    vendor = OpenAIVendor()
    with mock_http(handler):
        models = asyncio.run(vendor.list_models(vendor.get_access({})))

    assert [m.id for m in models] == ["gpt-3.5-turbo-16k", "gpt-4-32k-0613"]
    assert [m.context_window for m in models] == [16385, 32768]


def test_localai_sends_no_credentials():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"data": [{"id": "ggml-vicuna-7b.bin"}, {"id": "ggml-gpt4all-j"}]})

    vendor = LocalAIVendor()
    with patch.object(settings, "openai_api_key", "sk-server"), mock_http(handler):
        models = asyncio.run(vendor.list_models(vendor.get_access({"oai_host": "http://localhost:8080/"})))

    assert "Authorization" not in seen[0].headers
    assert str(seen[0].url) == "http://localhost:8080/v1/models"
    labels = {m.id: m.label for m in models}
    assert labels == {"ggml-vicuna-7b.bin": "vicuna 7b", "ggml-gpt4all-j": "GPT4All-J"}

    llm = vendor.model_to_llm(models[0], DModelSource("localai", "LocalAI", "localai"))
    assert llm.created == 0
    assert llm.options["llm_response_tokens"] == 256


def test_oobabooga_drops_models_that_cannot_chat():
    vendor = OobaboogaVendor()
    source = DModelSource("oobabooga", "Oobabooga", "oobabooga")

    def handler(request):
        return httpx.Response(200, json={"data": [
            {"id": "text-davinci-002"},
            {"id": "llama-2-7b-chat.bin", "created": 1700000000},
        ]})

    with mock_http(handler):
        models = asyncio.run(vendor.list_models(vendor.get_access({})))

    llms = [vendor.model_to_llm(m, source) for m in models]
    kept = [llm for llm in llms if llm]
    assert [llm.label for llm in kept] == ["Llama 2 7b Chat"]
    assert kept[0].created == 1700000000
    assert kept[0].hidden is False
