import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.core.context import AppContext, get_context
from app.services.generation import run_chat_turn, stop_generation
from app.services.trade import export_message

router = APIRouter()
logger = logging.getLogger(__name__)


class ChatTurnRequest(BaseModel):
    content: str | None = None
    llm_id: str | None = None


@router.post("/{conversation_id}")
async def chat_turn(conversation_id: str, body: ChatTurnRequest, context: AppContext = Depends(get_context)):
    """Append the user's text (if any) and generate the assistant's reply."""
    message = await run_chat_turn(context, conversation_id, body.content, body.llm_id)
    if message is None:
        return {"message": None, "stopped": True}
    return {"message": export_message(message), "stopped": False}


@router.post("/{conversation_id}/stop")
async def stop_chat_turn(conversation_id: str, context: AppContext = Depends(get_context)):
    stopped = stop_generation(context, conversation_id)
    if stopped:
        logger.info(f"Stop requested on {conversation_id}")
    return {"stopped": stopped}
