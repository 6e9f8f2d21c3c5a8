"""Vendor-agnostic chat contract. Every model vendor implements ModelVendor."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ValidationError

from app.core.errors import ConfigurationError, VendorCapabilityError

# capability tags advertised by listed models
LLM_IF_OAI_CHAT = "oai-chat"
LLM_IF_OAI_FN = "oai-fn"


class VendorId(str, Enum):
    OPENAI = "openai"
    LOCALAI = "localai"
    OOBABOOGA = "oobabooga"
    OLLAMA = "ollama"
    GEMINI = "gemini"


@dataclass
class Message:
    role: str  # "system" | "user" | "assistant"
    content: str


@dataclass
class ModelParams:
    id: str
    temperature: float | None = None
    max_tokens: int | None = None


@dataclass
class ChatResult:
    content: str
    finish_reason: Literal["stop"] | None = None
    role: str = "assistant"


@dataclass
class FunctionCallResult:
    function_name: str
    function_arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class FunctionParameter:
    name: str
    type: str  # "string" | "integer" | "boolean" | "number"
    description: str
    required: bool = True
    enum: list[str] | None = None


@dataclass
class FunctionDefinition:
    name: str
    description: str
    parameters: list[FunctionParameter] = field(default_factory=list)

    def parameters_schema(self) -> dict:
        properties = {}
        required = []
        for param in self.parameters:
            prop: dict[str, Any] = {"type": param.type, "description": param.description}
            if param.enum:
                prop["enum"] = param.enum
            properties[param.name] = prop
            if param.required:
                required.append(param.name)
        return {"type": "object", "properties": properties, "required": required}

    def to_openai_schema(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters_schema(),
        }

    def to_gemini_schema(self) -> dict:
        # Gemini takes the same JSON-schema subset, uppercase types are optional
        return self.to_openai_schema()


def fill_setup(defaults: dict[str, Any], partial: dict[str, Any] | None) -> dict[str, Any]:
    """Defaults overlaid with the partial setup. None counts as missing."""
    return {**defaults, **{k: v for k, v in (partial or {}).items() if v is not None}}


def build_access(access_type: type[BaseModel], **fields: Any) -> BaseModel:
    try:
        return access_type(**fields)
    except ValidationError as e:
        problems = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        raise ConfigurationError(f"Invalid source setup: {problems}") from e


@dataclass
class ModelDescription:
    """One remote model as reported by a vendor listing call."""

    id: str
    label: str
    description: str
    context_window: int
    interfaces: list[str] = field(default_factory=lambda: [LLM_IF_OAI_CHAT])
    created: int | None = None
    updated: int | None = None


@dataclass
class DModelSource:
    """One configured instance of a vendor."""

    id: str
    label: str
    vendor_id: str
    setup: dict[str, Any] = field(default_factory=dict)


@dataclass
class DLLM:
    """A model exposed by a source. The owning source is looked up by `source_id`."""

    id: str
    label: str
    created: int
    description: str
    context_tokens: int
    source_id: str
    hidden: bool = False
    updated: int | None = None
    tags: list[str] = field(default_factory=list)
    options: dict[str, Any] = field(default_factory=dict)


class ModelVendor(ABC):
    id: VendorId
    name: str
    rank: int
    location: Literal["local", "cloud"]
    instance_limit: int

    @abstractmethod
    def normalize_setup(self, partial: dict[str, Any] | None = None) -> dict[str, Any]:
        """Fill every setup field with its default. Pure and idempotent."""
        ...

    @abstractmethod
    def get_access(self, partial: dict[str, Any] | None = None) -> BaseModel:
        """Typed access descriptor built from a (partial) source setup."""
        ...

    @abstractmethod
    async def call_chat(self, access: Any, model: ModelParams, history: list[Message]) -> ChatResult:
        ...

    async def call_chat_with_functions(
        self,
        access: Any,
        model: ModelParams,
        history: list[Message],
        functions: list[FunctionDefinition],
        force_function_name: str | None = None,
    ) -> ChatResult | FunctionCallResult:
        raise VendorCapabilityError(f"{self.name} does not support function calling")

    @abstractmethod
    async def list_models(self, access: Any) -> list[ModelDescription]:
        ...

    def model_label(self, model: ModelDescription) -> str:
        return model.label

    def model_to_llm(self, model: ModelDescription, source: DModelSource) -> DLLM | None:
        """Map a listed model into an LLM of `source`; None drops the model."""
        context_tokens = model.context_window
        return DLLM(
            id=f"{source.id}-{model.id}",
            label=self.model_label(model),
            created=model.created or 0,
            updated=model.updated,
            description=model.description,
            tags=list(model.interfaces),
            context_tokens=context_tokens,
            source_id=source.id,
            options={
                "llm_ref": model.id,
                "llm_temperature": 0.5,
                "llm_response_tokens": round(context_tokens / 8),
            },
        )
