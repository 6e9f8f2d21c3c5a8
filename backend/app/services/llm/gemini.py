"""Google Gemini, through the google-genai SDK."""

import asyncio
import logging
from typing import Any, Literal

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from pydantic import BaseModel

from app.core.config import settings
from app.core.errors import ConfigurationError, ProtocolError, TransportError
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

logger = logging.getLogger(__name__)


class GeminiAccess(BaseModel):
    dialect: Literal["gemini"] = "gemini"
    gemini_key: str = ""


def gemini_contents(history: list[Message]) -> tuple[str | None, list[dict]]:
    """Split off a leading system message and map the rest to Gemini roles."""
    system_instruction: str | None = None
    if history and history[0].role == "system":
        system_instruction = history[0].content
        history = history[1:]
    contents = [
        {"role": "model" if m.role == "assistant" else "user", "parts": [{"text": m.content}]}
        for m in history
    ]
    return system_instruction, contents


class GeminiVendor(ModelVendor):
    id = VendorId.GEMINI
    name = "Gemini"
    rank = 30
    location = "cloud"
    instance_limit = 1

    tag = "Gemini"

    def normalize_setup(self, partial: dict[str, Any] | None = None) -> dict[str, Any]:
        return fill_setup({"gemini_key": ""}, partial)

    def get_access(self, partial: dict[str, Any] | None = None) -> GeminiAccess:
        setup = self.normalize_setup(partial)
        return build_access(GeminiAccess, gemini_key=setup["gemini_key"])

    def _client(self, access: GeminiAccess) -> genai.Client:
        api_key = access.gemini_key or settings.gemini_api_key
        if not api_key:
            raise ConfigurationError("Gemini API key not configured. Set MULTICHAT_GEMINI_API_KEY.")
        return genai.Client(api_key=api_key)

    async def _generate(
        self, access: GeminiAccess, model: ModelParams, history: list[Message], **config: Any
    ) -> types.GenerateContentResponse:
        client = self._client(access)
        system_instruction, contents = gemini_contents(history)
        generate_config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=model.temperature,
            max_output_tokens=model.max_tokens,
            **config,
        )
        logger.debug(f"Gemini: generate_content model={model.id} messages={len(contents)}")
        try:
            response = await client.aio.models.generate_content(
                model=model.id,
                contents=contents,
                config=generate_config,
            )
        except genai_errors.APIError as e:
            raise TransportError(self.tag, str(e), "generateContent", status_code=e.code) from e
        except httpx.HTTPError as e:
            raise TransportError(self.tag, f"network error: {e}", "generateContent") from e

        if not response.candidates or response.candidates[0].content is None:
            raise ProtocolError(self.tag, "response has no candidates", "generateContent", {"candidates": []})
        return response

    @staticmethod
    def _finish_reason(response: types.GenerateContentResponse) -> Literal["stop"] | None:
        return "stop" if response.candidates[0].finish_reason == types.FinishReason.STOP else None

    async def call_chat(self, access: GeminiAccess, model: ModelParams, history: list[Message]) -> ChatResult:
        response = await self._generate(access, model, history)
        return ChatResult(content=response.text or "", finish_reason=self._finish_reason(response))

    async def call_chat_with_functions(
        self,
        access: GeminiAccess,
        model: ModelParams,
        history: list[Message],
        functions: list[FunctionDefinition],
        force_function_name: str | None = None,
    ) -> ChatResult | FunctionCallResult:
        config: dict[str, Any] = {
            "tools": [types.Tool(function_declarations=[f.to_gemini_schema() for f in functions])],
        }
        if force_function_name:
            config["tool_config"] = types.ToolConfig(
                function_calling_config=types.FunctionCallingConfig(
                    mode="ANY", allowed_function_names=[force_function_name]
                )
            )
        response = await self._generate(access, model, history, **config)

        for part in response.candidates[0].content.parts or []:
            if part.function_call:
                return FunctionCallResult(
                    function_name=part.function_call.name,
                    function_arguments=dict(part.function_call.args) if part.function_call.args else {},
                )
        return ChatResult(content=response.text or "", finish_reason=self._finish_reason(response))

    def _fetch_models(self, access: GeminiAccess) -> list[types.Model]:
        client = self._client(access)
        try:
            return list(client.models.list())
        except genai_errors.APIError as e:
            raise TransportError(self.tag, str(e), "models", status_code=e.code) from e
        except httpx.HTTPError as e:
            raise TransportError(self.tag, f"network error: {e}", "models") from e

    async def list_models(self, access: GeminiAccess) -> list[ModelDescription]:
        wire_models = await asyncio.to_thread(self._fetch_models, access)
        models = []
        for m in wire_models:
            if not m.name or "generateContent" not in (m.supported_actions or []):
                continue
            model_id = m.name.removeprefix("models/")
            models.append(ModelDescription(
                id=model_id,
                label=m.display_name or model_id,
                description=m.description or "Gemini model",
                context_window=m.input_token_limit or 32768,
                interfaces=[LLM_IF_OAI_CHAT, LLM_IF_OAI_FN],
            ))
        return models
