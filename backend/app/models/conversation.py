"""Snapshot rows for conversations, stored as v1 export documents."""

from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


class ConversationRecord(SQLModel, table=True):
    id: str = Field(primary_key=True)
    position: int = Field(default=0)  # order in the store, 0 = newest
    payload: str  # JSON of the exported conversation
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
