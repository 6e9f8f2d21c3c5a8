"""Conversations and their messages.

ChatStore methods are synchronous, so under the event loop a mutation is never
observed half-done. Each conversation owns at most one generation handle, set
while a reply is being produced and cleared once that call settles.
"""

import asyncio
import copy
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from app.core.errors import ConfigurationError, UnknownConversationError
from app.core.events import EventChannel, StoreEvent
from app.services.personas import SYSTEM_PURPOSES, default_system_purpose_id

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4


def now_ms() -> int:
    return int(time.time() * 1000)


def estimate_tokens(text: str) -> int:
    """Rough token estimation: ~4 characters per token."""
    return len(text or "") // CHARS_PER_TOKEN


@dataclass
class DMessage:
    id: str
    role: str  # "system" | "user" | "assistant"
    text: str
    sender: str
    avatar: str | None = None
    typing: bool = False
    purpose_id: str | None = None
    origin_llm: str | None = None
    user_flags: list[str] = field(default_factory=list)  # e.g. "starred"
    token_count: int = 0
    created: int = field(default_factory=now_ms)
    updated: int | None = None


def create_message(role: str, text: str, **fields: Any) -> DMessage:
    sender = "You" if role == "user" else "Bot"
    return DMessage(id=str(uuid.uuid4()), role=role, text=text, sender=sender, **fields)


@dataclass(eq=False)
class GenerationHandle:
    """Cancellation token of one in-flight generation."""

    task: asyncio.Task | None = None
    stopped: bool = False

    def cancel(self) -> None:
        self.stopped = True
        if self.task is not None and not self.task.done():
            self.task.cancel()


@dataclass
class DConversation:
    id: str
    messages: list[DMessage] = field(default_factory=list)
    system_purpose_id: str = field(default_factory=default_system_purpose_id)
    user_title: str | None = None
    auto_title: str | None = None
    token_count: int = 0
    created: int = field(default_factory=now_ms)
    updated: int | None = field(default_factory=now_ms)
    # transient, never exported
    abort_controller: GenerationHandle | None = None
    ephemerals: list[dict[str, Any]] = field(default_factory=list)

    @property
    def title(self) -> str:
        return self.user_title or self.auto_title or ""


def create_conversation(system_purpose_id: str | None = None) -> DConversation:
    return DConversation(
        id=str(uuid.uuid4()),
        system_purpose_id=system_purpose_id or default_system_purpose_id(),
    )


class ChatStore:
    def __init__(self, events: EventChannel | None = None) -> None:
        self.conversations: list[DConversation] = []
        self.active_conversation_id: str | None = None
        self._events = events or EventChannel()
        self.create_conversation()

    def _emit(self, action: str, key: str | None = None) -> None:
        self._events.emit(StoreEvent(topic="conversations", action=action, key=key))

    @property
    def conversation_count(self) -> int:
        return len(self.conversations)

    def get_conversation(self, conversation_id: str) -> DConversation | None:
        return next((c for c in self.conversations if c.id == conversation_id), None)

    def _require(self, conversation_id: str) -> DConversation:
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            raise UnknownConversationError(conversation_id)
        return conversation

    def _touch(self, conversation: DConversation) -> None:
        """Recompute the derived token counts after the messages changed."""
        for message in conversation.messages:
            message.token_count = estimate_tokens(message.text)
        conversation.token_count = sum(m.token_count for m in conversation.messages)
        conversation.updated = now_ms()
        self._emit("update", conversation.id)

    # --- Conversations ---

    def create_conversation(self, system_purpose_id: str | None = None) -> str:
        conversation = create_conversation(system_purpose_id)
        self.conversations.insert(0, conversation)
        self.active_conversation_id = conversation.id
        self._emit("create", conversation.id)
        return conversation.id

    def set_active_conversation_id(self, conversation_id: str) -> None:
        self._require(conversation_id)
        self.active_conversation_id = conversation_id
        self._emit("activate", conversation_id)

    def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation, unless it is the last one left."""
        conversation = self._require(conversation_id)
        if self.conversation_count <= 1:
            logger.info(f"Not deleting {conversation_id}: it is the only conversation")
            return False

        if conversation.abort_controller:
            conversation.abort_controller.cancel()
        self.conversations = [c for c in self.conversations if c.id != conversation_id]
        if self.active_conversation_id == conversation_id:
            self.active_conversation_id = self.conversations[0].id
        self._emit("delete", conversation_id)
        return True

    def wipe_all_conversations(self, system_purpose_id: str | None = None) -> str:
        for conversation in self.conversations:
            if conversation.abort_controller:
                conversation.abort_controller.cancel()
            self._emit("delete", conversation.id)
        self.conversations = []
        return self.create_conversation(system_purpose_id)

    def load_conversations(self, conversations: list[DConversation]) -> None:
        """Replace the whole list, e.g. when restoring a snapshot. Keeps at least one."""
        if not conversations:
            return
        self.conversations = []
        for conversation in conversations:
            self._adopt(conversation)
            self.conversations.append(conversation)
        self.active_conversation_id = self.conversations[0].id

    def _adopt(self, conversation: DConversation) -> None:
        conversation.abort_controller = None
        conversation.ephemerals = []
        for message in conversation.messages:
            message.token_count = estimate_tokens(message.text)
        conversation.token_count = sum(m.token_count for m in conversation.messages)

    def import_conversation(self, conversation: DConversation, prevent_clash: bool = False) -> str:
        """Add an imported conversation on top, replacing one with the same id."""
        if prevent_clash and self.get_conversation(conversation.id):
            conversation.id = str(uuid.uuid4())
        existing = self.get_conversation(conversation.id)
        if existing is not None and existing.abort_controller:
            existing.abort_controller.cancel()
            existing.abort_controller = None
        self._adopt(conversation)
        self.conversations = [conversation] + [
            c for c in self.conversations if c.id != conversation.id
        ]
        self._emit("create", conversation.id)
        return conversation.id

    def duplicate_conversation(self, conversation_id: str) -> str:
        source = self._require(conversation_id)
        duplicate = DConversation(
            id=str(uuid.uuid4()),
            messages=[
                DMessage(**{**copy.deepcopy(vars(m)), "id": str(uuid.uuid4())})
                for m in source.messages
            ],
            system_purpose_id=source.system_purpose_id,
            user_title=source.user_title,
            auto_title=source.auto_title,
            token_count=source.token_count,
        )
        self.conversations.insert(0, duplicate)
        self.active_conversation_id = duplicate.id
        self._emit("create", duplicate.id)
        return duplicate.id

    def clear_conversation(self, conversation_id: str) -> None:
        conversation = self._require(conversation_id)
        if conversation.abort_controller:
            conversation.abort_controller.cancel()
            conversation.abort_controller = None
        conversation.messages = []
        conversation.auto_title = None
        self._touch(conversation)

    def set_system_purpose_id(self, conversation_id: str, system_purpose_id: str) -> None:
        if system_purpose_id not in SYSTEM_PURPOSES:
            raise ConfigurationError(f"Unknown persona: {system_purpose_id}")
        conversation = self._require(conversation_id)
        conversation.system_purpose_id = system_purpose_id
        self._emit("update", conversation_id)

    def set_user_title(self, conversation_id: str, title: str | None) -> None:
        conversation = self._require(conversation_id)
        conversation.user_title = title or None
        self._emit("update", conversation_id)

    def set_auto_title(self, conversation_id: str, title: str | None) -> None:
        conversation = self._require(conversation_id)
        conversation.auto_title = title or None
        self._emit("update", conversation_id)

    # --- Messages ---

    def append_message(self, conversation_id: str, message: DMessage) -> DMessage:
        conversation = self._require(conversation_id)
        conversation.messages.append(message)
        self._touch(conversation)
        return message

    def set_messages(self, conversation_id: str, messages: list[DMessage]) -> None:
        conversation = self._require(conversation_id)
        conversation.messages = list(messages)
        self._touch(conversation)

    def edit_message(self, conversation_id: str, message_id: str, **updates: Any) -> DMessage:
        conversation = self._require(conversation_id)
        message = next((m for m in conversation.messages if m.id == message_id), None)
        if message is None:
            raise KeyError(message_id)
        for name, value in updates.items():
            if not hasattr(message, name) or name in ("id", "created"):
                raise AttributeError(f"Message field cannot be edited: {name}")
            setattr(message, name, value)
        message.updated = now_ms()
        self._touch(conversation)
        return message

    def delete_message(self, conversation_id: str, message_id: str) -> bool:
        conversation = self._require(conversation_id)
        kept = [m for m in conversation.messages if m.id != message_id]
        if len(kept) == len(conversation.messages):
            return False
        conversation.messages = kept
        self._touch(conversation)
        return True

    # --- Generation handle ---

    def start_generation(self, conversation_id: str, handle: GenerationHandle) -> None:
        """Make `handle` the current one. A previous handle is superseded, not cancelled."""
        conversation = self._require(conversation_id)
        conversation.abort_controller = handle

    def stop_generation(self, conversation_id: str) -> bool:
        conversation = self._require(conversation_id)
        handle = conversation.abort_controller
        if handle is None:
            return False
        handle.cancel()
        conversation.abort_controller = None
        return True

    def release_generation(self, conversation_id: str, handle: GenerationHandle) -> None:
        conversation = self.get_conversation(conversation_id)
        if conversation is not None and conversation.abort_controller is handle:
            conversation.abort_controller = None
