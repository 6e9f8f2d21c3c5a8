"""Model vendors, configured sources, discovered LLMs and direct vendor calls."""

import logging
from typing import Any, Literal, cast

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from app.core.context import AppContext, get_context
from app.core.errors import ConfigurationError
from app.services.discovery import refresh_source_models
from app.services.llm.base import (
    DLLM,
    ChatResult,
    FunctionDefinition,
    FunctionParameter,
    Message,
    ModelDescription,
    ModelParams,
    ModelVendor,
    VendorId,
)
from app.services.llm.ollama import OllamaVendor
from app.services.llm.registry import find_vendor_by_id, list_vendors
from app.services.stores.llms import ModelStore
from app.services.trade import export_source

router = APIRouter()
logger = logging.getLogger(__name__)


class SourceCreate(BaseModel):
    vendor_id: str
    label: str | None = None
    setup: dict[str, Any] = Field(default_factory=dict)


class SourceUpdate(BaseModel):
    label: str | None = None
    setup: dict[str, Any] | None = None


class RolesUpdate(BaseModel):
    chat_llm_id: str | None = None
    fast_llm_id: str | None = None
    func_llm_id: str | None = None


class HistoryItem(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class ModelIn(BaseModel):
    id: str
    temperature: float | None = None
    max_tokens: int | None = None


class FunctionParameterIn(BaseModel):
    name: str
    type: str
    description: str = ""
    required: bool = True
    enum: list[str] | None = None


class FunctionIn(BaseModel):
    name: str
    description: str = ""
    parameters: list[FunctionParameterIn] = Field(default_factory=list)


class AccessOnlyRequest(BaseModel):
    access: dict[str, Any] = Field(default_factory=dict)


class ChatGenerateRequest(BaseModel):
    access: dict[str, Any] = Field(default_factory=dict)
    model: ModelIn
    history: list[HistoryItem]
    functions: list[FunctionIn] | None = None
    force_function_name: str | None = None


class OllamaModelRequest(BaseModel):
    access: dict[str, Any] = Field(default_factory=dict)
    name: str


def _llm_json(llm: DLLM, models: ModelStore) -> dict[str, Any]:
    source = models.source_of(llm)
    return {
        "id": llm.id,
        "label": llm.label,
        "created": llm.created,
        "updated": llm.updated,
        "description": llm.description,
        "tags": llm.tags,
        "contextTokens": llm.context_tokens,
        "hidden": llm.hidden,
        "sId": llm.source_id,
        "source": {"id": source.id, "label": source.label, "vId": source.vendor_id} if source else None,
        "options": llm.options,
    }


def _model_json(model: ModelDescription) -> dict[str, Any]:
    return {
        "id": model.id,
        "label": model.label,
        "created": model.created,
        "updated": model.updated,
        "description": model.description,
        "contextWindow": model.context_window,
        "interfaces": model.interfaces,
    }


def _vendor(vendor_id: str) -> ModelVendor:
    vendor = find_vendor_by_id(vendor_id)
    if vendor is None:
        raise HTTPException(status_code=404, detail=f"Unknown vendor: {vendor_id}")
    return vendor


def _ollama() -> OllamaVendor:
    return cast(OllamaVendor, find_vendor_by_id(VendorId.OLLAMA))


# --- Vendors and sources ---


@router.get("/vendors")
async def get_vendors(context: AppContext = Depends(get_context)):
    return [
        {
            "id": v.id.value,
            "name": v.name,
            "rank": v.rank,
            "location": v.location,
            "instanceLimit": v.instance_limit,
            "instances": sum(1 for s in context.models.sources if s.vendor_id == v.id.value),
        }
        for v in list_vendors()
    ]


@router.get("/sources")
async def get_sources(context: AppContext = Depends(get_context)):
    return [export_source(s) for s in context.models.sources]


@router.post("/sources")
async def create_source(body: SourceCreate, context: AppContext = Depends(get_context)):
    source_id = context.models.add_source(body.vendor_id, body.label, body.setup)
    return export_source(context.models.get_source(source_id))


@router.patch("/sources/{source_id}")
async def update_source(source_id: str, body: SourceUpdate, context: AppContext = Depends(get_context)):
    if context.models.get_source(source_id) is None:
        raise HTTPException(status_code=404, detail="Model source not found")
    if body.label:
        context.models.update_source_label(source_id, body.label)
    if body.setup is not None:
        context.models.update_source_setup(source_id, body.setup)
    return export_source(context.models.get_source(source_id))


@router.delete("/sources/{source_id}")
async def delete_source(source_id: str, context: AppContext = Depends(get_context)):
    if not context.models.remove_source(source_id):
        raise HTTPException(status_code=404, detail="Model source not found")
    return {"status": "deleted"}


@router.post("/sources/{source_id}/refresh")
async def refresh_source(source_id: str, context: AppContext = Depends(get_context)):
    if context.models.get_source(source_id) is None:
        raise HTTPException(status_code=404, detail="Model source not found")
    llms = await refresh_source_models(context.models, source_id)
    return [_llm_json(llm, context.models) for llm in llms]


# --- LLMs ---


@router.get("/models")
async def get_models(include_hidden: bool = True, context: AppContext = Depends(get_context)):
    models = context.models
    return {
        "chatLLMId": models.chat_llm_id,
        "fastLLMId": models.fast_llm_id,
        "funcLLMId": models.func_llm_id,
        "llms": [_llm_json(llm, models) for llm in models.list_llms(include_hidden=include_hidden)],
    }


# model ids carry the source id prefix and may contain slashes, e.g. "ollama-library/llama2:7b"
@router.patch("/models/{llm_id:path}/options")
async def update_model_options(llm_id: str, options: dict[str, Any], context: AppContext = Depends(get_context)):
    if context.models.get_llm(llm_id) is None:
        raise HTTPException(status_code=404, detail="Model not found")
    llm = context.models.update_llm_options(llm_id, options)
    return _llm_json(llm, context.models)


@router.delete("/models/{llm_id:path}")
async def delete_model(llm_id: str, context: AppContext = Depends(get_context)):
    if not context.models.remove_llm(llm_id):
        raise HTTPException(status_code=404, detail="Model not found")
    return {"status": "deleted"}


@router.put("/roles")
async def set_roles(body: RolesUpdate, context: AppContext = Depends(get_context)):
    models = context.models
    # only the roles present in the body change; an explicit null clears one
    if "chat_llm_id" in body.model_fields_set:
        models.set_chat_llm_id(body.chat_llm_id)
    if "fast_llm_id" in body.model_fields_set:
        models.set_fast_llm_id(body.fast_llm_id)
    if "func_llm_id" in body.model_fields_set:
        models.set_func_llm_id(body.func_llm_id)
    return {"chatLLMId": models.chat_llm_id, "fastLLMId": models.fast_llm_id, "funcLLMId": models.func_llm_id}


# --- Ollama administration ---


@router.get("/ollama/pullable")
async def ollama_list_pullable():
    return {"pullable": _ollama().list_pullable()}


@router.post("/ollama/pull")
async def ollama_pull(body: OllamaModelRequest):
    vendor = _ollama()
    result = await vendor.pull_model(vendor.get_access(body.access), body.name)
    return {"status": result.status, "error": result.error}


@router.post("/ollama/delete")
async def ollama_delete(body: OllamaModelRequest):
    vendor = _ollama()
    await vendor.delete_model(vendor.get_access(body.access), body.name)
    return {"status": "deleted"}


# --- Direct vendor calls ---


@router.post("/{vendor_id}/list-models")
async def vendor_list_models(vendor_id: str, body: AccessOnlyRequest):
    vendor = _vendor(vendor_id)
    models = await vendor.list_models(vendor.get_access(body.access))
    return {"models": [_model_json(m) for m in models]}


@router.post("/{vendor_id}/chat-generate")
async def vendor_chat_generate(vendor_id: str, body: ChatGenerateRequest):
    vendor = _vendor(vendor_id)
    access = vendor.get_access(body.access)
    model = ModelParams(id=body.model.id, temperature=body.model.temperature, max_tokens=body.model.max_tokens)
    history = [Message(role=h.role, content=h.content) for h in body.history]

    if not body.functions:
        result = await vendor.call_chat(access, model, history)
    else:
        functions = [
            FunctionDefinition(
                name=f.name,
                description=f.description,
                parameters=[FunctionParameter(**p.model_dump()) for p in f.parameters],
            )
            for f in body.functions
        ]
        if body.force_function_name and body.force_function_name not in {f.name for f in functions}:
            raise ConfigurationError(f"Unknown function: {body.force_function_name}")
        result = await vendor.call_chat_with_functions(
            access, model, history, functions, body.force_function_name
        )

    if isinstance(result, ChatResult):
        return {"role": result.role, "content": result.content, "finish_reason": result.finish_reason}
    return {"function_name": result.function_name, "function_arguments": result.function_arguments}
