"""PostgreSQL conversation store using asyncpg."""

from __future__ import annotations

from typing import Any

import asyncpg

from chainchat.config import settings
from chainchat.services import logger as log_service

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY DEFAULT md5(random()::text || clock_timestamp()::text),
    email TEXT UNIQUE NOT NULL,
    name TEXT
);
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY DEFAULT md5(random()::text || clock_timestamp()::text),
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY DEFAULT md5(random()::text || clock_timestamp()::text),
    conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    content TEXT NOT NULL,
    is_user BOOLEAN NOT NULL,
    model TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp()
);
CREATE INDEX IF NOT EXISTS messages_conversation_created_idx
    ON messages (conversation_id, created_at);
"""


def _conversation_row(record: asyncpg.Record) -> dict[str, Any]:
    return {
        "id": record["id"],
        "userId": record["user_id"],
        "title": record["title"],
        "createdAt": record["created_at"],
        "updatedAt": record["updated_at"],
    }


def _message_row(record: asyncpg.Record) -> dict[str, Any]:
    return {
        "id": record["id"],
        "conversationId": record["conversation_id"],
        "content": record["content"],
        "isUser": record["is_user"],
        "model": record["model"],
        "createdAt": record["created_at"],
    }


class PostgresConversationStore:
    """Conversation store backed by an asyncpg pool owned by the app lifespan."""

    def __init__(self, database_url: str | None = None):
        self.database_url = database_url or settings.database_url
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        """Create the connection pool and ensure the schema exists."""
        if not self.database_url:
            raise RuntimeError("Database not configured. Set DATABASE_URL in .env")
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                self.database_url,
                min_size=1,
                max_size=10,
            )
            async with self._pool.acquire() as conn:
                await conn.execute(SCHEMA)
            log_service.log_db_operation("connect", "*", "success")

    async def close(self) -> None:
        """Close the database connection pool."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def _get_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            await self.connect()
        return self._pool

    # --- Users ---

    async def get_user_by_email(self, email: str) -> dict[str, Any] | None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            result = await conn.fetchrow(
                "SELECT id, email, name FROM users WHERE email = $1",
                email,
            )
            return dict(result) if result else None

    # --- Conversations ---

    async def list_conversations(self, user_id: str) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            results = await conn.fetch(
                """
                SELECT c.id, c.title, c.updated_at, count(m.id) AS message_count
                FROM conversations c
                LEFT JOIN messages m ON m.conversation_id = c.id
                WHERE c.user_id = $1
                GROUP BY c.id
                ORDER BY c.updated_at DESC
                """,
                user_id,
            )
            return [
                {
                    "id": r["id"],
                    "title": r["title"],
                    "updatedAt": r["updated_at"],
                    "messageCount": r["message_count"],
                }
                for r in results
            ]

    async def get_conversation(
        self, conversation_id: str, user_id: str | None = None
    ) -> dict[str, Any] | None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            if user_id is None:
                result = await conn.fetchrow(
                    """
                    SELECT id, user_id, title, created_at, updated_at
                    FROM conversations
                    WHERE id = $1
                    """,
                    conversation_id,
                )
            else:
                result = await conn.fetchrow(
                    """
                    SELECT id, user_id, title, created_at, updated_at
                    FROM conversations
                    WHERE id = $1 AND user_id = $2
                    """,
                    conversation_id,
                    user_id,
                )
            return _conversation_row(result) if result else None

    async def get_latest_conversation(self, user_id: str) -> dict[str, Any] | None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            result = await conn.fetchrow(
                """
                SELECT id, user_id, title, created_at, updated_at
                FROM conversations
                WHERE user_id = $1
                ORDER BY updated_at DESC
                LIMIT 1
                """,
                user_id,
            )
            return _conversation_row(result) if result else None

    async def create_conversation(self, user_id: str, title: str) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            result = await conn.fetchrow(
                """
                INSERT INTO conversations (user_id, title)
                VALUES ($1, $2)
                RETURNING id, user_id, title, created_at, updated_at
                """,
                user_id,
                title,
            )
        log_service.log_db_operation("insert", "conversations", "success", details=result["id"])
        return _conversation_row(result)

    # --- Messages ---

    async def create_message(
        self, conversation_id: str, content: str, is_user: bool, model: str
    ) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                result = await conn.fetchrow(
                    """
                    INSERT INTO messages (conversation_id, content, is_user, model)
                    VALUES ($1, $2, $3, $4)
                    RETURNING id, conversation_id, content, is_user, model, created_at
                    """,
                    conversation_id,
                    content,
                    is_user,
                    model,
                )
                await conn.execute(
                    "UPDATE conversations SET updated_at = now() WHERE id = $1",
                    conversation_id,
                )
        log_service.log_db_operation("insert", "messages", "success", details=conversation_id)
        return _message_row(result)

    async def get_messages(self, conversation_id: str) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            results = await conn.fetch(
                """
                SELECT id, conversation_id, content, is_user, model, created_at
                FROM messages
                WHERE conversation_id = $1
                ORDER BY created_at
                """,
                conversation_id,
            )
            return [_message_row(r) for r in results]
