"""Chat turns: resolve the model, call its vendor, append the reply."""

import asyncio
import logging

from app.core.context import AppContext
from app.core.errors import ConfigurationError, UnknownConversationError
from app.services.llm.base import (
    DLLM,
    ChatResult,
    DModelSource,
    FunctionCallResult,
    FunctionDefinition,
    Message,
    ModelParams,
    ModelVendor,
)
from app.services.llm.registry import find_vendor_by_id
from app.services.personas import system_message_for
from app.services.stores.chats import DConversation, DMessage, GenerationHandle, create_message
from app.services.stores.llms import ModelStore

logger = logging.getLogger(__name__)

AUTO_TITLE_LENGTH = 80


def resolve_llm(models: ModelStore, llm_id: str | None) -> tuple[DLLM, DModelSource, ModelVendor]:
    if not llm_id:
        raise ConfigurationError("No model selected")
    llm = models.get_llm(llm_id)
    if llm is None:
        raise ConfigurationError(f"Unknown LLM: {llm_id}")
    source = models.source_of(llm)
    if source is None:
        raise ConfigurationError(f"LLM {llm_id} has no source")
    vendor = find_vendor_by_id(source.vendor_id)
    if vendor is None:
        raise ConfigurationError(f"Source {source.id} has an unknown vendor: {source.vendor_id}")
    return llm, source, vendor


def model_params(llm: DLLM) -> ModelParams:
    return ModelParams(
        id=llm.options.get("llm_ref") or llm.id,
        temperature=llm.options.get("llm_temperature"),
        max_tokens=llm.options.get("llm_response_tokens"),
    )


def build_history(conversation: DConversation) -> list[Message]:
    """The persona's system message (unless the conversation has its own) and the messages."""
    messages = [m for m in conversation.messages if not m.typing]
    history = [Message(role=m.role, content=m.text) for m in messages]
    if not messages or messages[0].role != "system":
        history.insert(0, Message(role="system", content=system_message_for(conversation.system_purpose_id)))
    return history


async def run_chat_turn(
    context: AppContext,
    conversation_id: str,
    user_text: str | None = None,
    llm_id: str | None = None,
) -> DMessage | None:
    """Run one turn. Returns the assistant message, or None if the turn was stopped."""
    chats = context.chats
    conversation = chats.get_conversation(conversation_id)
    if conversation is None:
        raise UnknownConversationError(conversation_id)
    llm, source, vendor = resolve_llm(context.models, llm_id or context.models.chat_llm_id)

    if user_text:
        chats.append_message(conversation_id, create_message("user", user_text))
        if not conversation.title:
            chats.set_auto_title(conversation_id, user_text[:AUTO_TITLE_LENGTH])

    access = vendor.get_access(source.setup)
    history = build_history(conversation)
    logger.debug(f"Chat turn on {conversation_id} with {llm.id} ({len(history)} messages)")

    task = asyncio.create_task(vendor.call_chat(access, model_params(llm), history))
    handle = GenerationHandle(task=task)
    chats.start_generation(conversation_id, handle)
    try:
        result: ChatResult = await task
    except asyncio.CancelledError:
        if not handle.stopped:
            raise
        logger.info(f"Generation stopped on {conversation_id}")
        return None
    finally:
        chats.release_generation(conversation_id, handle)

    if chats.get_conversation(conversation_id) is not conversation:
        logger.info(f"Conversation {conversation_id} was deleted or replaced during generation")
        return None

    reply = create_message(
        "assistant",
        result.content,
        purpose_id=conversation.system_purpose_id,
        origin_llm=llm.id,
    )
    return chats.append_message(conversation_id, reply)


def stop_generation(context: AppContext, conversation_id: str) -> bool:
    return context.chats.stop_generation(conversation_id)


async def call_functions(
    models: ModelStore,
    history: list[Message],
    functions: list[FunctionDefinition],
    force_function_name: str | None = None,
    llm_id: str | None = None,
) -> ChatResult | FunctionCallResult:
    """Function calling through the func-role model (or an explicit one)."""
    llm, source, vendor = resolve_llm(models, llm_id or models.func_llm_id)
    return await vendor.call_chat_with_functions(
        vendor.get_access(source.setup), model_params(llm), history, functions, force_function_name
    )
