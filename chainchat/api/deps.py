from __future__ import annotations

from fastapi import Depends, Request

from chainchat.agents.dispatcher import available_models
from chainchat.services.chat_handler import ChatHandler
from chainchat.services.memory_store import ConversationStore


def get_available_models() -> list[dict[str, str]]:
    """Return the selectable models, including the chained mode."""
    return available_models()


def get_store(request: Request) -> ConversationStore:
    """Process-wide conversation store created by the app lifespan."""
    return request.app.state.store


def get_chat_handler(store: ConversationStore = Depends(get_store)) -> ChatHandler:
    return ChatHandler(store)
