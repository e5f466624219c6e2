import json
import uuid
from typing import Any, Dict, List, Optional

import aiosqlite

from utils import isoformat, timestamp


def new_id() -> str:
    return uuid.uuid4().hex


def post_to_wire(row) -> Dict[str, Any]:
    return {
        "_id": row["id"],
        "uid": row["uid"],
        "userEmail": row["user_email"],
        "title": row["title"],
        "content": row["content"],
        "category": row["category"],
        "tags": json.loads(row["tags"]),
        "createdAt": isoformat(row["created_at"]),
        "updatedAt": isoformat(row["updated_at"]) if row["updated_at"] is not None else None,
    }


def reply_to_wire(row) -> Dict[str, Any]:
    return {
        "_id": row["id"],
        "postId": row["post_id"],
        "parentReplyId": row["parent_reply_id"],
        "uid": row["uid"],
        "userEmail": row["user_email"],
        "content": row["content"],
        "createdAt": isoformat(row["created_at"]),
        "updatedAt": isoformat(row["updated_at"]) if row["updated_at"] is not None else None,
    }


class DatabaseManager:
    """SQLite persistence of the reference forum store."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    async def initialize(self):
        async with aiosqlite.connect(self.db_path) as conn:
            await conn.executescript("""
                CREATE TABLE IF NOT EXISTS forum_posts (
                    id TEXT PRIMARY KEY,
                    uid TEXT NOT NULL,
                    user_email TEXT NOT NULL DEFAULT '',
                    title TEXT NOT NULL,
                    content TEXT NOT NULL,
                    category TEXT NOT NULL,
                    tags TEXT NOT NULL DEFAULT '[]',
                    created_at REAL NOT NULL,
                    updated_at REAL
                );
                CREATE TABLE IF NOT EXISTS forum_replies (
                    id TEXT PRIMARY KEY,
                    post_id TEXT NOT NULL,
                    parent_reply_id TEXT,
                    uid TEXT NOT NULL,
                    user_email TEXT NOT NULL DEFAULT '',
                    content TEXT NOT NULL,
                    created_at REAL NOT NULL,
                    updated_at REAL
                );
                CREATE INDEX IF NOT EXISTS idx_replies_post ON forum_replies(post_id);
            """)
            await conn.commit()

    async def execute_query(self, query: str, params: tuple = (), fetch_one: bool = False):
        async with aiosqlite.connect(self.db_path) as conn:
            conn.row_factory = aiosqlite.Row
            cursor = await conn.cursor()
            await cursor.execute(query, params)

            # Commit if this is a write operation (INSERT, UPDATE, DELETE)
            if query.strip().upper().startswith(('INSERT', 'UPDATE', 'DELETE')):
                await conn.commit()

            if fetch_one:
                result = await cursor.fetchone()
            else:
                result = await cursor.fetchall()
            await cursor.close()
            return result

    async def execute_write(self, query: str, params: tuple = ()) -> int:
        async with aiosqlite.connect(self.db_path) as conn:
            cursor = await conn.cursor()
            await cursor.execute(query, params)
            await conn.commit()
            rowcount = cursor.rowcount
            await cursor.close()
            return rowcount

    # =========================================================================
    # POSTS
    # =========================================================================

    async def list_posts(self) -> List[Dict[str, Any]]:
        rows = await self.execute_query("SELECT * FROM forum_posts ORDER BY created_at DESC")
        return [post_to_wire(row) for row in rows]

    async def get_post(self, post_id: str) -> Optional[Dict[str, Any]]:
        row = await self.execute_query("SELECT * FROM forum_posts WHERE id = ?", (post_id,), fetch_one=True)
        return post_to_wire(row) if row else None

    async def create_post(self, uid: str, email: str, title: str, content: str,
                          category: str, tags: List[str]) -> Dict[str, Any]:
        post_id = new_id()
        await self.execute_write("""
            INSERT INTO forum_posts (id, uid, user_email, title, content, category, tags, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (post_id, uid, email, title, content, category, json.dumps(tags), timestamp()))
        return await self.get_post(post_id)

    async def update_post(self, post_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        columns = {key: value for key, value in changes.items()
                   if key in ("title", "content", "category", "tags")}
        if "tags" in columns:
            columns["tags"] = json.dumps(columns["tags"])
        columns["updated_at"] = timestamp()
        assignments = ", ".join(f"{column} = ?" for column in columns)
        await self.execute_write(
            f"UPDATE forum_posts SET {assignments} WHERE id = ?",
            (*columns.values(), post_id)
        )
        return await self.get_post(post_id)

    async def delete_post(self, post_id: str) -> bool:
        return await self.execute_write("DELETE FROM forum_posts WHERE id = ?", (post_id,)) > 0

    # =========================================================================
    # REPLIES
    # =========================================================================

    async def list_replies(self) -> List[Dict[str, Any]]:
        rows = await self.execute_query("SELECT * FROM forum_replies ORDER BY created_at ASC")
        return [reply_to_wire(row) for row in rows]

    async def get_reply(self, reply_id: str) -> Optional[Dict[str, Any]]:
        row = await self.execute_query("SELECT * FROM forum_replies WHERE id = ?", (reply_id,), fetch_one=True)
        return reply_to_wire(row) if row else None

    async def create_reply(self, uid: str, email: str, post_id: str, content: str,
                           parent_reply_id: Optional[str] = None) -> Dict[str, Any]:
        reply_id = new_id()
        await self.execute_write("""
            INSERT INTO forum_replies (id, post_id, parent_reply_id, uid, user_email, content, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (reply_id, post_id, parent_reply_id, uid, email, content, timestamp()))
        return await self.get_reply(reply_id)

    async def update_reply(self, reply_id: str, content: str) -> Optional[Dict[str, Any]]:
        await self.execute_write(
            "UPDATE forum_replies SET content = ?, updated_at = ? WHERE id = ?",
            (content, timestamp(), reply_id)
        )
        return await self.get_reply(reply_id)

    async def delete_reply(self, reply_id: str) -> bool:
        return await self.execute_write("DELETE FROM forum_replies WHERE id = ?", (reply_id,)) > 0
