"""Tests for the SQLite snapshots of the stores."""

from sqlmodel import Session

from app.core.context import AppContext
from app.models.conversation import ConversationRecord
from app.models.source import ModelSourceRecord
from app.services.persistence import StatePersistence
from app.services.stores.chats import create_message
from tests.conftest import test_engine


def _attached() -> tuple[AppContext, StatePersistence]:
    context = AppContext()
    persistence = StatePersistence(context, bind=test_engine)
    persistence.attach()
    return context, persistence


def test_changes_are_saved_and_restored():
    context, persistence = _attached()
    cid = context.chats.active_conversation_id
    context.chats.append_message(cid, create_message("user", "remember me"))
    other = context.chats.create_conversation("Developer")
    context.models.add_source("ollama", setup={"ollama_host": "http://gpu:11434"})
    persistence.detach()

    restored = AppContext()
    outcome = StatePersistence(restored, bind=test_engine).load()

    assert outcome.failed == []
    assert [c.id for c in restored.chats.conversations] == [other, cid]
    assert restored.chats.active_conversation_id == other
    assert restored.chats.get_conversation(cid).messages[0].text == "remember me"
    assert restored.chats.get_conversation(cid).token_count == 2
    assert restored.models.get_source("ollama").setup == {"ollama_host": "http://gpu:11434"}


def test_deletes_are_saved():
    context, persistence = _attached()
    cid = context.chats.create_conversation()
    context.chats.delete_conversation(cid)
    source_id = context.models.add_source("gemini")
    context.models.remove_source(source_id)

    with Session(test_engine) as session:
        assert session.get(ConversationRecord, cid) is None
        assert session.get(ModelSourceRecord, source_id) is None


def test_detach_stops_saving():
    context, persistence = _attached()
    persistence.detach()
    cid = context.chats.create_conversation()

    with Session(test_engine) as session:
        assert session.get(ConversationRecord, cid) is None


def test_unreadable_rows_are_skipped():
    with Session(test_engine) as session:
        session.add(ConversationRecord(id="broken", position=0, payload="{not json"))
        session.add(ConversationRecord(id="odd", position=1, payload="{\"hello\": 1}"))
        session.add(ModelSourceRecord(id="ghost", position=0, vendor_id="anthropic", label="Ghost", setup="{}"))
        session.commit()

    context = AppContext()
    initial = context.chats.active_conversation_id
    outcome = StatePersistence(context, bind=test_engine).load()

    assert len(outcome.failed) == 1
    assert [c.id for c in context.chats.conversations] == [initial]
    assert context.models.sources == []
