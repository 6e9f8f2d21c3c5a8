"""REST API for conversations: lifecycle, messages, export and import."""

import json
import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, UploadFile
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from app.core.context import AppContext, get_context
from app.services.stores.chats import DConversation, create_message
from app.services.trade import (
    ImportedOutcome,
    ImportResult,
    all_conversations_file_name,
    conversation_file_name,
    conversation_to_markdown,
    export_all,
    export_conversation,
    export_message,
    import_any,
)

router = APIRouter()
logger = logging.getLogger(__name__)


class ConversationCreate(BaseModel):
    system_purpose_id: str | None = None


class PersonaUpdate(BaseModel):
    system_purpose_id: str


class TitleUpdate(BaseModel):
    title: str | None = None


class MessageCreate(BaseModel):
    role: Literal["system", "user", "assistant"] = "user"
    text: str


class MessageUpdate(BaseModel):
    text: str


def _summary(conversation: DConversation, context: AppContext) -> dict:
    return {
        "id": conversation.id,
        "title": conversation.title,
        "systemPurposeId": conversation.system_purpose_id,
        "messageCount": len(conversation.messages),
        "tokenCount": conversation.token_count,
        "created": conversation.created,
        "updated": conversation.updated,
        "active": conversation.id == context.chats.active_conversation_id,
        "generating": conversation.abort_controller is not None,
    }


def _download(payload: dict, file_name: str) -> JSONResponse:
    return JSONResponse(
        content=payload,
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )


@router.get("/")
async def list_conversations(context: AppContext = Depends(get_context)):
    return [_summary(c, context) for c in context.chats.conversations]


@router.post("/")
async def create_conversation(body: ConversationCreate | None = None, context: AppContext = Depends(get_context)):
    conversation_id = context.chats.create_conversation(body.system_purpose_id if body else None)
    return _summary(context.chats.get_conversation(conversation_id), context)


@router.post("/wipe")
async def wipe_conversations(context: AppContext = Depends(get_context)):
    conversation_id = context.chats.wipe_all_conversations()
    return {"status": "wiped", "id": conversation_id}


@router.get("/export")
async def export_all_conversations(context: AppContext = Depends(get_context)):
    return _download(export_all(context.chats, context.models), all_conversations_file_name())


@router.post("/import")
async def import_conversations(files: list[UploadFile], context: AppContext = Depends(get_context)):
    """Import one or more exported files. Every conversation gets its own outcome entry."""
    outcome = ImportedOutcome()
    for upload in files:
        file_name = upload.filename or "upload.json"
        try:
            document = json.loads(await upload.read())
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            outcome.conversations.append(
                ImportResult(success=False, file_name=file_name, error=f"Invalid file: {file_name}: {e}")
            )
            continue
        import_any(file_name, document, outcome)

    for conversation in outcome.succeeded:
        context.chats.import_conversation(conversation)
    logger.info(
        f"Imported {len(outcome.succeeded)} conversations, {len(outcome.failed)} failed"
    )
    return {"conversations": [r.to_json() for r in outcome.conversations]}


@router.get("/{conversation_id}")
async def get_conversation(conversation_id: str, context: AppContext = Depends(get_context)):
    conversation = context.chats.get_conversation(conversation_id)
    if not conversation:
        logger.debug(f"Conversation {conversation_id} not found")
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {**export_conversation(conversation), **_summary(conversation, context)}


@router.delete("/{conversation_id}")
async def delete_conversation(conversation_id: str, context: AppContext = Depends(get_context)):
    if not context.chats.get_conversation(conversation_id):
        logger.debug(f"Delete: conversation {conversation_id} not found")
        raise HTTPException(status_code=404, detail="Conversation not found")

    # the last conversation is never deleted
    deleted = context.chats.delete_conversation(conversation_id)
    return {"status": "deleted" if deleted else "kept", "count": context.chats.conversation_count}


@router.post("/{conversation_id}/activate")
async def activate_conversation(conversation_id: str, context: AppContext = Depends(get_context)):
    context.chats.set_active_conversation_id(conversation_id)
    return {"activeConversationId": conversation_id}


@router.put("/{conversation_id}/persona")
async def set_persona(conversation_id: str, body: PersonaUpdate, context: AppContext = Depends(get_context)):
    context.chats.set_system_purpose_id(conversation_id, body.system_purpose_id)
    return _summary(context.chats.get_conversation(conversation_id), context)


@router.put("/{conversation_id}/title")
async def set_title(conversation_id: str, body: TitleUpdate, context: AppContext = Depends(get_context)):
    context.chats.set_user_title(conversation_id, body.title)
    return _summary(context.chats.get_conversation(conversation_id), context)


@router.post("/{conversation_id}/messages")
async def append_message(conversation_id: str, body: MessageCreate, context: AppContext = Depends(get_context)):
    message = context.chats.append_message(conversation_id, create_message(body.role, body.text))
    return export_message(message)


@router.patch("/{conversation_id}/messages/{message_id}")
async def edit_message(
    conversation_id: str, message_id: str, body: MessageUpdate, context: AppContext = Depends(get_context)
):
    try:
        message = context.chats.edit_message(conversation_id, message_id, text=body.text)
    except KeyError as e:
        if e.args and e.args[0] == message_id:
            raise HTTPException(status_code=404, detail="Message not found")
        raise
    return export_message(message)


@router.delete("/{conversation_id}/messages/{message_id}")
async def delete_message(conversation_id: str, message_id: str, context: AppContext = Depends(get_context)):
    if not context.chats.delete_message(conversation_id, message_id):
        raise HTTPException(status_code=404, detail="Message not found")
    return {"status": "deleted"}


@router.post("/{conversation_id}/clear")
async def clear_conversation(conversation_id: str, context: AppContext = Depends(get_context)):
    context.chats.clear_conversation(conversation_id)
    return _summary(context.chats.get_conversation(conversation_id), context)


@router.post("/{conversation_id}/duplicate")
async def duplicate_conversation(conversation_id: str, context: AppContext = Depends(get_context)):
    duplicate_id = context.chats.duplicate_conversation(conversation_id)
    return _summary(context.chats.get_conversation(duplicate_id), context)


@router.get("/{conversation_id}/export")
async def export_one(conversation_id: str, context: AppContext = Depends(get_context)):
    conversation = context.chats.get_conversation(conversation_id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return _download(export_conversation(conversation), conversation_file_name(conversation))


@router.get("/{conversation_id}/markdown")
async def export_markdown(
    conversation_id: str, hide_system: bool = False, context: AppContext = Depends(get_context)
):
    conversation = context.chats.get_conversation(conversation_id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return PlainTextResponse(conversation_to_markdown(conversation, hide_system))
