"""Tests for the chat turn endpoints."""

import json

import httpx

from tests.conftest import add_test_llm, mock_http


def _ollama_handler(requests):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"model": "llama2", "response": "Hello from llama", "done": True})
    return handler


def test_chat_turn_appends_user_and_assistant_messages(client, context):
    llm = add_test_llm(context.models)
    cid = context.chats.active_conversation_id
    requests = []

    with mock_http(_ollama_handler(requests)):
        response = client.post(f"/api/chat/{cid}", json={"content": "Hi there"})

    assert response.status_code == 200
    data = response.json()
    assert data["stopped"] is False
    assert data["message"]["text"] == "Hello from llama"
    assert data["message"]["originLLM"] == llm.id

    conversation = client.get(f"/api/conversations/{cid}").json()
    assert [m["role"] for m in conversation["messages"]] == ["user", "assistant"]
    assert conversation["title"] == "Hi there"

    sent = json.loads(requests[0].content)
    assert requests[0].url.path == "/api/generate"
    assert sent["model"] == "llama2:latest"
    assert sent["prompt"].endswith("\n\nHuman: Hi there\n\nAssistant:\n")
    assert "system" in sent


def test_chat_turn_without_model_is_rejected(client, context):
    cid = context.chats.active_conversation_id
    response = client.post(f"/api/chat/{cid}", json={"content": "Hi"})
    assert response.status_code == 400


def test_chat_turn_unknown_conversation(client, context):
    add_test_llm(context.models)
    response = client.post("/api/chat/does-not-exist", json={"content": "Hi"})
    assert response.status_code == 404


def test_vendor_failure_is_reported_as_bad_gateway(client, context):
    add_test_llm(context.models)
    cid = context.chats.active_conversation_id

    def handler(request):
        return httpx.Response(500, text="model crashed")

    with mock_http(handler):
        response = client.post(f"/api/chat/{cid}", json={"content": "Hi"})

    assert response.status_code == 502
    data = response.json()
    assert data["vendor"] == "Ollama"
    assert data["kind"] == "transport"
    assert context.chats.get_conversation(cid).abort_controller is None


def test_stop_without_generation(client, context):
    cid = context.chats.active_conversation_id
    response = client.post(f"/api/chat/{cid}/stop")
    assert response.status_code == 200
    assert response.json() == {"stopped": False}
