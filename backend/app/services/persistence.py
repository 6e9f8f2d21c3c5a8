"""Snapshots of the stores in SQLite, restored at startup.

Conversations are stored as v1 export documents and read back through the
import path, so saved rows follow the same compatibility rules as backup files.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from app.core.context import AppContext
from app.core.database import engine
from app.core.errors import ConfigurationError
from app.core.events import StoreEvent
from app.models.conversation import ConversationRecord
from app.models.source import ModelSourceRecord
from app.services.llm.base import DModelSource
from app.services.trade import ImportedOutcome, export_conversation, import_any

logger = logging.getLogger(__name__)


class StatePersistence:
    def __init__(self, context: AppContext, bind: Engine | None = None) -> None:
        self.context = context
        self.engine = bind or engine
        self._unsubscribe: list[Callable[[], None]] = []

    def attach(self) -> None:
        events = self.context.events
        self._unsubscribe = [
            events.subscribe("conversations", self._on_conversations),
            events.subscribe("sources", self._on_sources),
        ]

    def detach(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []

    def _on_conversations(self, event: StoreEvent) -> None:
        if event.action != "activate":
            self.save_conversations()

    def _on_sources(self, event: StoreEvent) -> None:
        self.save_sources()

    # --- Save ---

    def save_conversations(self) -> None:
        conversations = self.context.chats.conversations
        with Session(self.engine) as session:
            keep = {c.id for c in conversations}
            for record in session.exec(select(ConversationRecord)).all():
                if record.id not in keep:
                    session.delete(record)
            for position, conversation in enumerate(conversations):
                record = session.get(ConversationRecord, conversation.id) or ConversationRecord(
                    id=conversation.id, payload=""
                )
                record.position = position
                record.payload = json.dumps(export_conversation(conversation))
                record.updated_at = datetime.now(timezone.utc)
                session.add(record)
            session.commit()

    def save_sources(self) -> None:
        sources = self.context.models.sources
        with Session(self.engine) as session:
            keep = {s.id for s in sources}
            for record in session.exec(select(ModelSourceRecord)).all():
                if record.id not in keep:
                    session.delete(record)
            for position, source in enumerate(sources):
                record = session.get(ModelSourceRecord, source.id) or ModelSourceRecord(
                    id=source.id, vendor_id=source.vendor_id, label=source.label
                )
                record.position = position
                record.vendor_id = source.vendor_id
                record.label = source.label
                record.setup = json.dumps(source.setup)
                record.updated_at = datetime.now(timezone.utc)
                session.add(record)
            session.commit()

    # --- Load ---

    def load(self) -> ImportedOutcome:
        """Restore sources and conversations. Rows that cannot be read are skipped."""
        outcome = ImportedOutcome()
        with Session(self.engine) as session:
            source_rows = session.exec(
                select(ModelSourceRecord).order_by(ModelSourceRecord.position)  # type: ignore
            ).all()
            conversation_rows = session.exec(
                select(ConversationRecord).order_by(ConversationRecord.position)  # type: ignore
            ).all()

        for row in source_rows:
            try:
                setup = json.loads(row.setup or "{}")
                self.context.models.restore_source(
                    DModelSource(id=row.id, label=row.label, vendor_id=row.vendor_id, setup=setup)
                )
            except (ConfigurationError, json.JSONDecodeError) as e:
                logger.warning(f"Skipping stored model source {row.id}: {e}")

        for row in conversation_rows:
            try:
                payload = json.loads(row.payload)
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping stored conversation {row.id}: {e}")
                continue
            import_any(f"db:{row.id}", payload, outcome)

        for failure in outcome.failed:
            logger.warning(f"Skipping stored conversation: {failure.error}")
        self.context.chats.load_conversations(outcome.succeeded)
        logger.info(
            f"Restored {len(outcome.succeeded)} conversations and {len(self.context.models.sources)} sources"
        )
        return outcome
