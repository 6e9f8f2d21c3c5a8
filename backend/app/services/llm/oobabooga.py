"""Oobabooga text-generation-webui, through its OpenAI-compatible extension.

The active model is chosen on the server; the API cannot switch models and does
not run them concurrently.
"""

import time
from typing import Any

from app.services.llm.base import LLM_IF_OAI_CHAT, DLLM, DModelSource, ModelDescription, VendorId, fill_setup
from app.services.llm.openai import OpenAIVendor, OpenAIWireModel

NOT_CHAT_MODELS: tuple[str, ...] = (
    "text-curie-001",
    "text-davinci-002",
    "all-mpnet-base-v2",
    "gpt-3.5-turbo",
    "text-embedding-ada-002",
)


def _pretty_label(model_id: str) -> str:
    words = model_id.replace("_", " ").replace("-", " ").split(" ")
    label = " ".join(w[:1].upper() + w[1:] for w in words)
    if label.endswith(".bin"):
        label = label[: -len(".bin")]
    return label


class OobaboogaVendor(OpenAIVendor):
    id = VendorId.OOBABOOGA
    name = "Oobabooga (Alpha)"
    rank = 15
    location = "local"
    instance_limit = 1

    tag = "Oobabooga"
    default_host = "http://127.0.0.1:5001"

    def env_host(self) -> str:
        return ""

    def normalize_setup(self, partial: dict[str, Any] | None = None) -> dict[str, Any]:
        return fill_setup({"oai_host": ""}, partial)

    def describe_model(self, model: OpenAIWireModel) -> ModelDescription:
        return ModelDescription(
            id=model.id,
            label=_pretty_label(model.id),
            description="Oobabooga model",
            # TODO: read the context window once the webui API reports it
            context_window=4096,
            interfaces=[LLM_IF_OAI_CHAT],
            created=model.created or round(time.time()),
        )

    def model_to_llm(self, model: ModelDescription, source: DModelSource) -> DLLM | None:
        if model.id in NOT_CHAT_MODELS:
            return None
        return super().model_to_llm(model, source)
