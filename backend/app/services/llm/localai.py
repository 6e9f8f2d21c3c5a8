"""LocalAI: a local OpenAI-compatible server."""

from typing import Any

from app.core.config import settings
from app.services.llm.base import LLM_IF_OAI_CHAT, DLLM, DModelSource, ModelDescription, VendorId, fill_setup
from app.services.llm.openai import OpenAIVendor, OpenAIWireModel

# per-model overrides, anything else is derived from the file name
MODEL_HEURISTICS: dict[str, dict[str, Any]] = {
    "ggml-gpt4all-j": {"label": "GPT4All-J", "context_tokens": 2048},
}


class LocalAIVendor(OpenAIVendor):
    id = VendorId.LOCALAI
    name = "LocalAI"
    rank = 20
    location = "local"
    instance_limit = 1

    tag = "LocalAI"
    default_host = "http://127.0.0.1:8080"

    def env_host(self) -> str:
        return settings.localai_api_host

    def normalize_setup(self, partial: dict[str, Any] | None = None) -> dict[str, Any]:
        return fill_setup({"oai_host": ""}, partial)

    def describe_model(self, model: OpenAIWireModel) -> ModelDescription:
        heuristic = MODEL_HEURISTICS.get(model.id) or {
            "label": model.id.replace("ggml-", "").replace(".bin", "").replace("-", " "),
            "context_tokens": 2048,
        }
        return ModelDescription(
            id=model.id,
            label=heuristic["label"],
            description="Local model",
            context_window=heuristic["context_tokens"],
            interfaces=[LLM_IF_OAI_CHAT],
        )

    def model_to_llm(self, model: ModelDescription, source: DModelSource) -> DLLM | None:
        llm = super().model_to_llm(model, source)
        if llm:
            # LocalAI does not report creation dates
            llm.created = 0
        return llm
