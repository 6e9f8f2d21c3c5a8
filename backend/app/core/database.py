"""SQLite storage used to snapshot the in-memory stores between restarts."""

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from app.core.config import settings


def _connect_args(url: str) -> dict:
    # the stores are snapshotted from the event loop thread and from worker threads
    return {"check_same_thread": False} if url.startswith("sqlite") else {}


engine = create_engine(
    settings.database_url,
    echo=settings.debug,
    connect_args=_connect_args(settings.database_url),
)


def init_db(bind: Engine | None = None) -> None:
    import app.models  # noqa: F401 - ensure models are registered
    SQLModel.metadata.create_all(bind or engine)
