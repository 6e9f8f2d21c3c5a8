"""Export and import of conversations as v1 JSON documents.

Two document shapes exist, told apart by their top-level keys:
- a single conversation: {"id", "messages", ...}
- everything: {"conversations": [...], "models": {"sources": [...]}}

Do not change the field names or the defaults below: people's backups depend on them.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from app.services.llm.base import DModelSource
from app.services.personas import SYSTEM_PURPOSES, default_system_purpose_id
from app.services.stores.chats import ChatStore, DConversation, DMessage, now_ms
from app.services.stores.llms import ModelStore

logger = logging.getLogger(__name__)

MESSAGE_ROLES = ("system", "user", "assistant")


@dataclass
class ImportResult:
    success: bool
    file_name: str
    conversation: DConversation | None = None
    error: str | None = None

    def to_json(self) -> dict[str, Any]:
        if self.success and self.conversation is not None:
            return {
                "success": True,
                "fileName": self.file_name,
                "conversation": export_conversation(self.conversation),
            }
        return {"success": False, "fileName": self.file_name, "error": self.error}


@dataclass
class ImportedOutcome:
    """Append-only log of per-conversation import results."""

    conversations: list[ImportResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[DConversation]:
        return [r.conversation for r in self.conversations if r.success and r.conversation]

    @property
    def failed(self) -> list[ImportResult]:
        return [r for r in self.conversations if not r.success]


# --- Export ---


def export_message(message: DMessage) -> dict[str, Any]:
    exported: dict[str, Any] = {
        "id": message.id,
        "text": message.text,
        "sender": message.sender,
        "avatar": message.avatar,
        "typing": message.typing,
        "role": message.role,
        "tokenCount": message.token_count,
        "created": message.created,
        "updated": message.updated,
    }
    if message.purpose_id:
        exported["purposeId"] = message.purpose_id
    if message.origin_llm:
        exported["originLLM"] = message.origin_llm
    if message.user_flags:
        exported["userFlags"] = list(message.user_flags)
    return exported


def export_conversation(conversation: DConversation) -> dict[str, Any]:
    """The conversation without its transient fields (generation handle, ephemerals)."""
    exported: dict[str, Any] = {
        "id": conversation.id,
        "messages": [export_message(m) for m in conversation.messages],
        "systemPurposeId": conversation.system_purpose_id,
        "tokenCount": conversation.token_count,
        "created": conversation.created,
        "updated": conversation.updated,
    }
    if conversation.user_title:
        exported["userTitle"] = conversation.user_title
    if conversation.auto_title:
        exported["autoTitle"] = conversation.auto_title
    return exported


def export_source(source: DModelSource) -> dict[str, Any]:
    return {"id": source.id, "label": source.label, "vId": source.vendor_id, "setup": dict(source.setup)}


def export_all(chats: ChatStore, models: ModelStore) -> dict[str, Any]:
    """Every conversation plus the configured sources. LLMs are re-discovered, not saved."""
    return {
        "conversations": [export_conversation(c) for c in chats.conversations],
        "models": {"sources": [export_source(s) for s in models.sources]},
    }


def conversation_file_name(conversation: DConversation) -> str:
    return f"conversation-{conversation.id}.json"


def all_conversations_file_name(when: datetime | None = None) -> str:
    iso_date = (when or datetime.now(timezone.utc)).isoformat().replace(":", "-")
    return f"conversations-{iso_date}.json"


# --- Import ---


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return None


def _timestamp(value: Any) -> int:
    """A stored timestamp, or now when there is none. 0 is a valid timestamp."""
    stamp = _as_int(value)
    return now_ms() if stamp is None else stamp


def _as_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def restore_message(raw: Any) -> DMessage:
    if not isinstance(raw, dict):
        raise ValueError("message is not an object")
    role = raw.get("role")
    if role not in MESSAGE_ROLES:
        raise ValueError(f"message has an invalid role: {role!r}")
    # older files and other tools use "content" for the text
    text = raw.get("text") if isinstance(raw.get("text"), str) else raw.get("content")
    if not isinstance(text, str):
        raise ValueError("message has no text")

    flags = raw.get("userFlags")
    return DMessage(
        id=_as_str(raw.get("id")) or str(uuid.uuid4()),
        role=role,
        text=text,
        sender=_as_str(raw.get("sender")) or ("You" if role == "user" else "Bot"),
        avatar=_as_str(raw.get("avatar")),
        typing=bool(raw.get("typing", False)),
        purpose_id=_as_str(raw.get("purposeId")),
        origin_llm=_as_str(raw.get("originLLM")),
        user_flags=[f for f in flags if isinstance(f, str)] if isinstance(flags, list) else [],
        token_count=_as_int(raw.get("tokenCount")) or 0,
        created=_timestamp(raw.get("created")),
        updated=_as_int(raw.get("updated")),
    )


def import_conversation(file_name: str, part: Any, outcome: ImportedOutcome) -> None:
    """Restore one conversation, defaulting every optional field. Never raises."""
    part_id = part.get("id") if isinstance(part, dict) else None
    if not _as_str(part_id) or not isinstance(part.get("messages"), list):
        outcome.conversations.append(
            ImportResult(success=False, file_name=file_name, error=f"Invalid conversation: {part_id}")
        )
        return

    try:
        messages = [restore_message(m) for m in part["messages"]]
    except ValueError as e:
        outcome.conversations.append(
            ImportResult(success=False, file_name=file_name, error=f"Invalid conversation: {part_id}: {e}")
        )
        return

    restored = DConversation(
        id=part_id,
        messages=messages,
        system_purpose_id=_as_str(part.get("systemPurposeId")) or default_system_purpose_id(),
        user_title=_as_str(part.get("userTitle")),
        auto_title=_as_str(part.get("autoTitle")),
        token_count=_as_int(part.get("tokenCount")) or 0,
        created=_timestamp(part.get("created")),
        updated=_timestamp(part.get("updated")),
        # not exported, always reset
        abort_controller=None,
        ephemerals=[],
    )
    outcome.conversations.append(ImportResult(success=True, file_name=file_name, conversation=restored))


def import_any(file_name: str, obj: Any, outcome: ImportedOutcome | None = None) -> ImportedOutcome:
    """Restore every conversation of a single-conversation or an all-data document."""
    outcome = outcome if outcome is not None else ImportedOutcome()
    has_conversations = isinstance(obj, dict) and "conversations" in obj
    has_messages = isinstance(obj, dict) and "messages" in obj

    if has_conversations and not has_messages and isinstance(obj["conversations"], list):
        for conversation in obj["conversations"]:
            import_conversation(file_name, conversation, outcome)
    elif has_messages and not has_conversations:
        import_conversation(file_name, obj, outcome)
    else:
        logger.info(f"Import: {file_name} is neither a conversation nor a full export")
        outcome.conversations.append(
            ImportResult(success=False, file_name=file_name, error=f"Invalid file: {file_name}")
        )
    return outcome


load_all_conversations_from_json = import_any


# --- Markdown ---


def pretty_base_model(model: str) -> str:
    for known in ("gpt-4-32k", "gpt-4", "gpt-3.5-turbo-16k"):
        if known in model:
            return known
    if "gpt-3.5-turbo" in model:
        return "3.5 Turbo"
    return model.rsplit("/", 1)[-1]


def conversation_to_markdown(conversation: DConversation, hide_system_message: bool = False) -> str:
    sections = []
    for message in conversation.messages:
        if hide_system_message and message.role == "system":
            continue
        sender, text = message.sender, message.text
        if message.role == "system":
            sender = "✨ System message"
            text = f"*{text}*"
        elif message.role == "assistant":
            purpose = message.purpose_id or conversation.system_purpose_id or None
            sender = f"{purpose or 'Assistant'} · *{pretty_base_model(message.origin_llm or '')}*".strip()
            if purpose and purpose in SYSTEM_PURPOSES:
                sender = f"{SYSTEM_PURPOSES[purpose].symbol} {sender}".strip()
        elif message.role == "user":
            sender = "👤 You"
        sections.append(f"### {sender}\n\n{text}\n\n")
    return "---\n\n".join(sections)
