"""OpenAI-compatible chat completions. Also the wire dialect of LocalAI and Oobabooga."""

import json
import logging
from typing import Any, Literal

from pydantic import BaseModel, Field

from app.core.config import settings
from app.core.errors import ProtocolError
from app.services.llm.base import (
    LLM_IF_OAI_CHAT,
    LLM_IF_OAI_FN,
    ChatResult,
    FunctionCallResult,
    FunctionDefinition,
    Message,
    ModelDescription,
    ModelParams,
    ModelVendor,
    VendorId,
    build_access,
    fill_setup,
)
from app.services.llm.transport import fetch_json, fixup_host, resolve_host, validate_wire

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_HOST = "https://api.openai.com"

# known context windows, everything else gets the conservative default
OPENAI_CONTEXT_WINDOWS: dict[str, int] = {
    "gpt-4-32k": 32768,
    "gpt-4": 8192,
    "gpt-3.5-turbo-16k": 16385,
    "gpt-3.5-turbo": 4097,
}


class OpenAIAccess(BaseModel):
    dialect: Literal["openai", "localai", "oobabooga"] = "openai"
    oai_key: str = ""
    oai_org: str = ""
    oai_host: str = ""


# --- Wire types ---


class _WireFunctionCall(BaseModel):
    name: str
    arguments: str = "{}"


class _WireChatMessage(BaseModel):
    role: str
    content: str | None = None
    function_call: _WireFunctionCall | None = None


class _WireChoice(BaseModel):
    index: int = 0
    message: _WireChatMessage
    finish_reason: str | None = None


class _WireChatCompletion(BaseModel):
    choices: list[_WireChoice] = Field(min_length=1)


class OpenAIWireModel(BaseModel):
    id: str
    created: int | None = None
    owned_by: str | None = None


class _WireModelList(BaseModel):
    data: list[OpenAIWireModel]


def openai_chat_payload(
    model: ModelParams,
    history: list[Message],
    functions: list[FunctionDefinition] | None = None,
    force_function_name: str | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "model": model.id,
        "messages": [{"role": m.role, "content": m.content} for m in history],
        "n": 1,
        "stream": False,
    }
    if model.temperature is not None:
        payload["temperature"] = model.temperature
    if model.max_tokens:
        payload["max_tokens"] = model.max_tokens
    if functions:
        payload["functions"] = [f.to_openai_schema() for f in functions]
        if force_function_name:
            payload["function_call"] = {"name": force_function_name}
    return payload


def map_finish_reason(reason: str | None) -> Literal["stop"] | None:
    return "stop" if reason == "stop" else None


class OpenAIVendor(ModelVendor):
    id = VendorId.OPENAI
    name = "OpenAI"
    rank = 10
    location = "cloud"
    instance_limit = 1

    tag = "OpenAI"
    default_host = DEFAULT_OPENAI_HOST

    def env_host(self) -> str:
        return settings.openai_api_host

    def normalize_setup(self, partial: dict[str, Any] | None = None) -> dict[str, Any]:
        return fill_setup({"oai_host": "", "oai_key": "", "oai_org": ""}, partial)

    def get_access(self, partial: dict[str, Any] | None = None) -> OpenAIAccess:
        setup = self.normalize_setup(partial)
        return build_access(
            OpenAIAccess,
            dialect=self.id.value,
            oai_key=setup.get("oai_key", ""),
            oai_org=setup.get("oai_org", ""),
            oai_host=setup["oai_host"],
        )

    def _endpoint(self, access: OpenAIAccess, api_path: str) -> tuple[dict[str, str], str]:
        host = fixup_host(resolve_host(access.oai_host, self.env_host(), self.default_host), api_path)
        headers = {"Content-Type": "application/json"}
        if access.dialect == "openai":
            key = access.oai_key or settings.openai_api_key
            org = access.oai_org or settings.openai_api_org_id
            if key:
                headers["Authorization"] = f"Bearer {key}"
            if org:
                headers["OpenAI-Organization"] = org
        return headers, host + api_path

    async def _chat_completion(self, access: OpenAIAccess, payload: dict[str, Any]) -> _WireChoice:
        api_path = "/v1/chat/completions"
        headers, url = self._endpoint(access, api_path)
        wire = await fetch_json(url, "POST", headers, payload, self.tag)
        completion = validate_wire(_WireChatCompletion, wire, self.tag, api_path)
        return completion.choices[0]

    async def call_chat(self, access: OpenAIAccess, model: ModelParams, history: list[Message]) -> ChatResult:
        choice = await self._chat_completion(access, openai_chat_payload(model, history))
        return ChatResult(
            content=choice.message.content or "",
            finish_reason=map_finish_reason(choice.finish_reason),
        )

    async def call_chat_with_functions(
        self,
        access: OpenAIAccess,
        model: ModelParams,
        history: list[Message],
        functions: list[FunctionDefinition],
        force_function_name: str | None = None,
    ) -> ChatResult | FunctionCallResult:
        payload = openai_chat_payload(model, history, functions, force_function_name)
        choice = await self._chat_completion(access, payload)

        call = choice.message.function_call
        if call is None:
            return ChatResult(
                content=choice.message.content or "",
                finish_reason=map_finish_reason(choice.finish_reason),
            )
        try:
            arguments = json.loads(call.arguments or "{}")
        except json.JSONDecodeError as e:
            raise ProtocolError(self.tag, f"function arguments are not JSON: {e}", payload=call.arguments) from e
        if not isinstance(arguments, dict):
            raise ProtocolError(self.tag, "function arguments are not an object", payload=arguments)
        return FunctionCallResult(function_name=call.name, function_arguments=arguments)

    async def _list_wire_models(self, access: OpenAIAccess) -> list[OpenAIWireModel]:
        api_path = "/v1/models"
        headers, url = self._endpoint(access, api_path)
        wire = await fetch_json(url, "GET", headers, None, self.tag)
        return validate_wire(_WireModelList, wire, self.tag, api_path).data

    def describe_model(self, model: OpenAIWireModel) -> ModelDescription | None:
        # only chat models are useful here
        if "gpt" not in model.id:
            return None
        context_window = 4096
        for prefix, window in OPENAI_CONTEXT_WINDOWS.items():
            if model.id.startswith(prefix):
                context_window = window
                break
        return ModelDescription(
            id=model.id,
            label=model.id.upper().replace("GPT-", "GPT ").replace("-", " "),
            description=f"OpenAI model, owned by {model.owned_by or 'openai'}",
            context_window=context_window,
            interfaces=[LLM_IF_OAI_CHAT, LLM_IF_OAI_FN],
            created=model.created,
            updated=model.created,
        )

    async def list_models(self, access: OpenAIAccess) -> list[ModelDescription]:
        wire_models = await self._list_wire_models(access)
        models = [m for m in (self.describe_model(w) for w in wire_models) if m]
        return sorted(models, key=lambda m: m.id)
