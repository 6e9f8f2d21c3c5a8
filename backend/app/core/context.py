"""The owning context of the in-process stores, handed to whoever needs them."""

from dataclasses import dataclass, field

from fastapi import Request

from app.core.events import EventChannel
from app.services.stores.chats import ChatStore
from app.services.stores.llms import ModelStore


@dataclass
class AppContext:
    events: EventChannel = field(default_factory=EventChannel)
    chats: ChatStore = field(init=False)
    models: ModelStore = field(init=False)

    def __post_init__(self) -> None:
        self.chats = ChatStore(self.events)
        self.models = ModelStore(self.events)


def get_context(request: Request) -> AppContext:
    return request.app.state.context
