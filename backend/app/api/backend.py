"""Server-side capabilities, pre-configured by the deployer, and the persona list."""

from fastapi import APIRouter

from app.core.config import settings
from app.services.personas import SYSTEM_PURPOSES, default_system_purpose_id

router = APIRouter()


@router.get("/capabilities")
async def list_capabilities():
    return {
        "hasDB": settings.persist_state and bool(settings.database_url),
        "hasLlmOpenAI": bool(settings.openai_api_key or settings.openai_api_host),
        "hasLlmOllama": bool(settings.ollama_api_host),
        "hasLlmLocalAI": bool(settings.localai_api_host),
        "hasLlmGemini": bool(settings.gemini_api_key),
    }


@router.get("/personas")
async def list_personas():
    return {
        "default": default_system_purpose_id(),
        "personas": [
            {"id": purpose_id, "title": p.title, "description": p.description, "symbol": p.symbol}
            for purpose_id, p in SYSTEM_PURPOSES.items()
        ],
    }
