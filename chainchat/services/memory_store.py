"""Conversation store contract and an in-process implementation.

The chat handler only sees ``ConversationStore``; rows are plain dicts with
camelCase keys so they can be returned to the client as-is.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Protocol
from uuid import uuid4

from chainchat.services import logger as log_service


class ConversationStore(Protocol):
    async def get_user_by_email(self, email: str) -> dict[str, Any] | None: ...

    async def list_conversations(self, user_id: str) -> list[dict[str, Any]]: ...

    async def get_conversation(
        self, conversation_id: str, user_id: str | None = None
    ) -> dict[str, Any] | None: ...

    async def get_latest_conversation(self, user_id: str) -> dict[str, Any] | None: ...

    async def create_conversation(self, user_id: str, title: str) -> dict[str, Any]: ...

    async def create_message(
        self, conversation_id: str, content: str, is_user: bool, model: str
    ) -> dict[str, Any]: ...

    async def get_messages(self, conversation_id: str) -> list[dict[str, Any]]: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryConversationStore:
    """Process-local store for development and tests."""

    def __init__(self, *, auto_create_users: bool = False):
        self.auto_create_users = auto_create_users
        self._users: dict[str, dict[str, Any]] = {}
        self._conversations: dict[str, dict[str, Any]] = {}
        self._messages: dict[str, list[dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    def add_user(self, email: str, name: str | None = None) -> dict[str, Any]:
        user = {"id": uuid4().hex, "email": email, "name": name}
        self._users[email] = user
        return user

    async def get_user_by_email(self, email: str) -> dict[str, Any] | None:
        user = self._users.get(email)
        if user is None and self.auto_create_users:
            user = self.add_user(email)
            log_service.log_db_operation("insert", "users", "success", details=email)
        return user

    async def list_conversations(self, user_id: str) -> list[dict[str, Any]]:
        owned = [c for c in self._conversations.values() if c["userId"] == user_id]
        owned.sort(key=lambda c: c["updatedAt"], reverse=True)
        return [
            {
                "id": c["id"],
                "title": c["title"],
                "updatedAt": c["updatedAt"],
                "messageCount": len(self._messages.get(c["id"], [])),
            }
            for c in owned
        ]

    async def get_conversation(
        self, conversation_id: str, user_id: str | None = None
    ) -> dict[str, Any] | None:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return None
        if user_id is not None and conversation["userId"] != user_id:
            return None
        return dict(conversation)

    async def get_latest_conversation(self, user_id: str) -> dict[str, Any] | None:
        owned = [c for c in self._conversations.values() if c["userId"] == user_id]
        if not owned:
            return None
        return dict(max(owned, key=lambda c: c["updatedAt"]))

    async def create_conversation(self, user_id: str, title: str) -> dict[str, Any]:
        now = _utcnow()
        conversation = {
            "id": uuid4().hex,
            "userId": user_id,
            "title": title,
            "createdAt": now,
            "updatedAt": now,
        }
        async with self._lock:
            self._conversations[conversation["id"]] = conversation
            self._messages[conversation["id"]] = []
        log_service.log_db_operation("insert", "conversations", "success", details=conversation["id"])
        return dict(conversation)

    async def create_message(
        self, conversation_id: str, content: str, is_user: bool, model: str
    ) -> dict[str, Any]:
        if conversation_id not in self._conversations:
            raise KeyError(f"Unknown conversation: {conversation_id}")
        message = {
            "id": uuid4().hex,
            "conversationId": conversation_id,
            "content": content,
            "isUser": is_user,
            "model": model,
            "createdAt": _utcnow(),
        }
        async with self._lock:
            self._messages[conversation_id].append(message)
            self._conversations[conversation_id]["updatedAt"] = message["createdAt"]
        log_service.log_db_operation("insert", "messages", "success", details=conversation_id)
        return dict(message)

    async def get_messages(self, conversation_id: str) -> list[dict[str, Any]]:
        return [dict(m) for m in self._messages.get(conversation_id, [])]
