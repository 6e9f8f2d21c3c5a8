"""Ollama: local completion server without native chat-turn framing.

Chat history is flattened into a Human/Assistant transcript for /api/generate,
with a leading system message moved into the separate `system` field.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel

from app.core.config import settings
from app.core.errors import ProtocolError, VendorError
from app.services.llm.base import (
    LLM_IF_OAI_CHAT,
    ChatResult,
    Message,
    ModelDescription,
    ModelParams,
    ModelVendor,
    VendorId,
    build_access,
    fill_setup,
)
from app.services.llm.transport import (
    fetch_json,
    fetch_text,
    fixup_host,
    parse_ndjson,
    resolve_host,
    validate_wire,
)

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_HOST = "http://127.0.0.1:11434"
DEFAULT_CONTEXT_WINDOW = 4096

# base models of the Ollama library, used for descriptions and the pull list
OLLAMA_LAST_UPDATE = "20231101"
OLLAMA_BASE_MODELS: dict[str, dict[str, str]] = {
    "mistral": {"description": "The Mistral 7B model released by Mistral AI", "added": "20230930"},
    "llama2": {"description": "The most popular model for general use."},
    "codellama": {"description": "A large language model that can use text prompts to generate and discuss code."},
    "llama2-uncensored": {"description": "Uncensored Llama 2 model by George Sung and Jarrad Hope."},
    "orca-mini": {"description": "A general-purpose model ranging from 3 billion parameters to 70 billion, suitable for entry-level hardware."},
    "vicuna": {"description": "General use chat model based on Llama and Llama 2 with 2K to 16K context sizes."},
    "wizard-vicuna-uncensored": {"description": "Wizard Vicuna Uncensored is a 7B, 13B, and 30B parameter model based on Llama 2 uncensored by Eric Hartford."},
    "nous-hermes": {"description": "General use models based on Llama and Llama 2 from Nous Research."},
    "phind-codellama": {"description": "Code generation model based on CodeLlama.", "added": "20230906"},
    "zephyr": {"description": "Zephyr beta is a fine-tuned 7B version of mistral that was trained on on a mix of publicly available, synthetic datasets.", "added": "20231101"},
    "falcon": {"description": "A large language model built by the Technology Innovation Institute (TII) for use in summarization, text generation, and chat bots.", "added": "20230913"},
    "starcoder": {"description": "StarCoder is a code generation model trained on 80+ programming languages.", "added": "20231005"},
}

_NUM_CTX = re.compile(r"^\s*num_ctx\s+(\d+)\s*$", re.MULTILINE)
_FRACTION = re.compile(r"(\.\d{6})\d+")


class OllamaAccess(BaseModel):
    dialect: Literal["ollama"] = "ollama"
    ollama_host: str = ""


# --- Wire types ---


class _WireGeneration(BaseModel):
    model: str
    response: str
    done: bool
    created_at: str | None = None


class _WireTag(BaseModel):
    name: str
    modified_at: str
    size: int
    digest: str


class _WireTags(BaseModel):
    models: list[_WireTag]


class _WireModelInfo(BaseModel):
    license: str | None = None
    modelfile: str
    parameters: str | None = None
    template: str | None = None


@dataclass
class PullResult:
    status: str
    error: str | None = None


def ollama_chat_payload(model: ModelParams, history: list[Message], stream: bool = False) -> dict[str, Any]:
    system_prompt: str | None = None
    if history and history[0].role == "system":
        system_prompt = history[0].content
        history = history[1:]

    # same template for every model for now
    prompt = "".join(
        f"\n\nAssistant: {m.content}" if m.role == "assistant" else f"\n\nHuman: {m.content}"
        for m in history
    ) + "\n\nAssistant:\n"

    payload: dict[str, Any] = {
        "model": model.id,
        "prompt": prompt,
        "options": {"temperature": model.temperature} if model.temperature else {},
        "stream": stream,
    }
    if system_prompt:
        payload["system"] = system_prompt
    return payload


def _parse_timestamp(value: str) -> int | None:
    """Epoch seconds of an Ollama RFC 3339 timestamp (nanosecond precision allowed)."""
    try:
        return int(datetime.fromisoformat(_FRACTION.sub(r"\1", value).replace("Z", "+00:00")).timestamp())
    except ValueError:
        return None


def _pretty_label(name: str) -> str:
    # model names are "name:tag", the default tag being 'latest'
    model_name, _, model_tag = name.partition(":")
    label = model_name[:1].upper() + model_name[1:]
    if model_tag and model_tag != "latest":
        label += f" · {model_tag}"
    return label


class OllamaVendor(ModelVendor):
    id = VendorId.OLLAMA
    name = "Ollama"
    rank = 22
    location = "local"
    instance_limit = 2

    tag = "Ollama"

    def normalize_setup(self, partial: dict[str, Any] | None = None) -> dict[str, Any]:
        return fill_setup({"ollama_host": ""}, partial)

    def get_access(self, partial: dict[str, Any] | None = None) -> OllamaAccess:
        setup = self.normalize_setup(partial)
        return build_access(OllamaAccess, ollama_host=setup["ollama_host"])

    def _endpoint(self, access: OllamaAccess, api_path: str) -> tuple[dict[str, str], str]:
        host = resolve_host(access.ollama_host, settings.ollama_api_host, DEFAULT_OLLAMA_HOST)
        return {"Content-Type": "application/json"}, fixup_host(host, api_path) + api_path

    async def _get(self, access: OllamaAccess, api_path: str) -> Any:
        headers, url = self._endpoint(access, api_path)
        return await fetch_json(url, "GET", headers, None, self.tag)

    async def _post(self, access: OllamaAccess, body: dict[str, Any], api_path: str) -> Any:
        headers, url = self._endpoint(access, api_path)
        return await fetch_json(url, "POST", headers, body, self.tag)

    async def call_chat(self, access: OllamaAccess, model: ModelParams, history: list[Message]) -> ChatResult:
        wire = await self._post(access, ollama_chat_payload(model, history), "/api/generate")
        generation = validate_wire(_WireGeneration, wire, self.tag, "/api/generate")
        return ChatResult(
            content=generation.response,
            finish_reason="stop" if generation.done else None,
        )

    async def _model_info(self, access: OllamaAccess, name: str) -> _WireModelInfo:
        wire = await self._post(access, {"name": name}, "/api/show")
        return validate_wire(_WireModelInfo, wire, self.tag, "/api/show")

    async def list_models(self, access: OllamaAccess) -> list[ModelDescription]:
        wire = await self._get(access, "/api/tags")
        tags = validate_wire(_WireTags, wire, self.tag, "/api/tags").models

        # one detail request per model, in parallel; a failed one only loses its details
        infos = await asyncio.gather(
            *(self._model_info(access, tag.name) for tag in tags),
            return_exceptions=True,
        )

        models = []
        for tag, info in zip(tags, infos):
            if isinstance(info, VendorError):
                logger.warning(f"Ollama: no details for {tag.name}, using listing data: {info}")
                info = None
            elif isinstance(info, BaseException):
                raise info
            models.append(self._describe(tag, info))
        return models

    def _describe(self, tag: _WireTag, info: _WireModelInfo | None) -> ModelDescription:
        model_name = tag.name.partition(":")[0]
        base = OLLAMA_BASE_MODELS.get(model_name)

        context_window = DEFAULT_CONTEXT_WINDOW
        description = base["description"] if base else "Model unknown"
        if info is not None:
            match = _NUM_CTX.search(info.parameters or "")
            if match:
                context_window = int(match.group(1))
            if not base and info.license:
                description = f"License: {info.license.strip().splitlines()[0]}"

        modified = _parse_timestamp(tag.modified_at)
        return ModelDescription(
            id=tag.name,
            label=_pretty_label(tag.name),
            description=description,
            context_window=context_window,
            interfaces=[LLM_IF_OAI_CHAT],
            created=modified,
            updated=modified,
        )

    # --- Admin ---

    def list_pullable(self) -> list[dict[str, Any]]:
        return [
            {
                "id": model_id,
                "label": model_id[:1].upper() + model_id[1:],
                "tag": "latest",
                "description": model["description"],
                "isNew": model.get("added", "") >= OLLAMA_LAST_UPDATE,
            }
            for model_id, model in OLLAMA_BASE_MODELS.items()
        ]

    async def pull_model(self, access: OllamaAccess, name: str) -> PullResult:
        headers, url = self._endpoint(access, "/api/pull")
        text = await fetch_text(url, "POST", headers, {"name": name}, "Ollama::pull")

        # the body is a log of status records, keep the last status and error
        result = PullResult(status="unknown")
        for record in parse_ndjson(text, "Ollama::pull", "/api/pull"):
            if record.get("status"):
                result.status = f"{name}: {record['status']}"
            if record.get("error"):
                result.error = record["error"]
        return result

    async def delete_model(self, access: OllamaAccess, name: str) -> None:
        headers, url = self._endpoint(access, "/api/delete")
        output = await fetch_text(url, "DELETE", headers, {"name": name}, "Ollama::delete")
        if output and output.strip() != "null":
            raise ProtocolError("Ollama::delete", f"delete issue: {output[:256]}", "/api/delete", output)
