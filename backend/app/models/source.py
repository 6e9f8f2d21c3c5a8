"""Snapshot rows for configured model sources. LLMs are re-discovered, never stored."""

from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


class ModelSourceRecord(SQLModel, table=True):
    id: str = Field(primary_key=True)
    position: int = Field(default=0)
    vendor_id: str
    label: str
    setup: str = Field(default="{}")  # JSON of the partial setup
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
