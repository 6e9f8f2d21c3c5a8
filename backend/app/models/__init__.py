from app.models.conversation import ConversationRecord
from app.models.source import ModelSourceRecord

__all__ = ["ConversationRecord", "ModelSourceRecord"]
