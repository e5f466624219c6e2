from typing import List, Optional

import aiosqlite

from config import DRAFT_KEY_PREFIX, LOCAL_STORAGE_PATH
from utils import timestamp


class LocalStorage:
    """Durable key-value storage on the client, kept in a small SQLite file."""

    def __init__(self, db_path: str = LOCAL_STORAGE_PATH):
        self.db_path = db_path
        self._initialized = False

    async def initialize(self):
        async with aiosqlite.connect(self.db_path) as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS local_storage (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
            """)
            await conn.commit()
        self._initialized = True

    async def execute_query(self, query: str, params: tuple = (), fetch_one: bool = False):
        if not self._initialized:
            await self.initialize()
        async with aiosqlite.connect(self.db_path) as conn:
            conn.row_factory = aiosqlite.Row
            cursor = await conn.cursor()
            await cursor.execute(query, params)

            if query.strip().upper().startswith(('INSERT', 'UPDATE', 'DELETE')):
                await conn.commit()

            if fetch_one:
                result = await cursor.fetchone()
            else:
                result = await cursor.fetchall()
            await cursor.close()
            return result

    async def get_item(self, key: str) -> Optional[str]:
        row = await self.execute_query(
            "SELECT value FROM local_storage WHERE key = ?", (key,), fetch_one=True
        )
        return row["value"] if row else None

    async def set_item(self, key: str, value: str):
        await self.execute_query("""
            INSERT INTO local_storage (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
        """, (key, value, timestamp()))

    async def remove_item(self, key: str):
        await self.execute_query("DELETE FROM local_storage WHERE key = ?", (key,))

    async def keys(self, prefix: str = "") -> List[str]:
        rows = await self.execute_query(
            "SELECT key FROM local_storage WHERE key LIKE ? ORDER BY key", (f"{prefix}%",)
        )
        return [row["key"] for row in rows]


def post_draft_key() -> str:
    return f"{DRAFT_KEY_PREFIX}:post:new"


def reply_draft_key(post_id: str) -> str:
    return f"{DRAFT_KEY_PREFIX}:reply:{post_id}"


class DraftStore:
    """User-authored draft text. Never authoritative over posts or replies."""

    def __init__(self, storage: LocalStorage):
        self.storage = storage

    async def save(self, key: str, text: str):
        if text.strip():
            await self.storage.set_item(key, text)
        else:
            await self.discard(key)

    async def load(self, key: str) -> str:
        return await self.storage.get_item(key) or ""

    async def discard(self, key: str):
        await self.storage.remove_item(key)

    async def list_keys(self) -> List[str]:
        return await self.storage.keys(f"{DRAFT_KEY_PREFIX}:")
