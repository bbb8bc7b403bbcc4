"""Data access layer using repository pattern.

Features:
- Clean data access API
- Atomic multi-statement mutations
- Batched aggregate loading
"""

import json
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import aiosqlite
import structlog

from .database import DatabaseManager
from .models import AuditLogModel, ChatMessageModel, ThreadModel, UserModel

logger = structlog.get_logger()

UPDATABLE_THREAD_FIELDS = ("title", "description", "location", "tags")


class UserRepository:
    """User data access."""

    def __init__(self, db_manager: DatabaseManager):
        """Initialize repository."""
        self.db = db_manager

    async def get_user(self, user_id: str) -> Optional[UserModel]:
        """Get user by ID."""
        async with self.db.get_connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM users WHERE user_id = ?", (user_id,)
            )
            row = await cursor.fetchone()
            return UserModel.from_row(row) if row else None

    async def get_by_username(self, username: str) -> Optional[UserModel]:
        """Get user by username (case-insensitive)."""
        async with self.db.get_connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM users WHERE username = ?", (username,)
            )
            row = await cursor.fetchone()
            return UserModel.from_row(row) if row else None

    async def get_users(self, user_ids: Iterable[str]) -> Dict[str, UserModel]:
        """Get users by ID, keyed by ID. Unknown IDs are skipped."""
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        async with self.db.get_connection() as conn:
            cursor = await conn.execute(
                f"SELECT * FROM users WHERE user_id IN ({placeholders})", ids
            )
            rows = await cursor.fetchall()
            return {row["user_id"]: UserModel.from_row(row) for row in rows}

    async def create_user(self, user: UserModel) -> UserModel:
        """Create new user."""
        async with self.db.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO users (user_id, username, is_admin, created_at)
                VALUES (?, ?, ?, ?)
            """,
                (user.user_id, user.username, user.is_admin, user.created_at),
            )

        logger.info(
            "Created user",
            user_id=user.user_id,
            username=user.username,
            is_admin=user.is_admin,
        )
        return user

    async def get_all_users(self) -> List[UserModel]:
        """Get all users, newest first."""
        async with self.db.get_connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM users ORDER BY created_at DESC, rowid DESC"
            )
            rows = await cursor.fetchall()
            return [UserModel.from_row(row) for row in rows]


class ThreadRepository:
    """Thread aggregate data access."""

    def __init__(self, db_manager: DatabaseManager):
        """Initialize repository."""
        self.db = db_manager

    async def create_thread(self, thread: ThreadModel) -> ThreadModel:
        """Insert a thread together with its creator membership."""
        async with self.db.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO threads
                (thread_id, title, description, location, tags,
                 creator_id, creator_name, created_at, expires_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    thread.thread_id,
                    thread.title,
                    thread.description,
                    thread.location,
                    json.dumps(thread.tags),
                    thread.creator_id,
                    thread.creator_name,
                    thread.created_at,
                    thread.expires_at,
                ),
            )
            await conn.execute(
                """
                INSERT INTO thread_members (thread_id, user_id, joined_at)
                VALUES (?, ?, ?)
            """,
                (thread.thread_id, thread.creator_id, thread.created_at),
            )

        logger.info(
            "Created thread",
            thread_id=thread.thread_id,
            creator_id=thread.creator_id,
            expires_at=thread.expires_at.isoformat(),
        )
        return thread

    async def get_thread(self, thread_id: str) -> Optional[ThreadModel]:
        """Load one thread with members, pending requests and chat."""
        async with self.db.get_connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM threads WHERE thread_id = ?", (thread_id,)
            )
            row = await cursor.fetchone()
            if not row:
                return None

            members = await self._fetch_grouped(
                conn,
                "SELECT thread_id, user_id FROM thread_members "
                "WHERE thread_id = ? ORDER BY rowid",
                (thread_id,),
            )
            pending = await self._fetch_grouped(
                conn,
                "SELECT thread_id, user_id FROM join_requests "
                "WHERE thread_id = ? ORDER BY rowid",
                (thread_id,),
            )
            chat = await self._fetch_messages(
                conn,
                "SELECT * FROM chat_messages WHERE thread_id = ? ORDER BY seq",
                (thread_id,),
            )

        return ThreadModel.from_row(
            row,
            members=members.get(thread_id),
            pending_requests=pending.get(thread_id),
            chat=chat.get(thread_id),
        )

    async def list_threads(self) -> List[ThreadModel]:
        """Load every stored thread, newest first."""
        async with self.db.get_connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM threads ORDER BY created_at DESC, rowid DESC"
            )
            rows = await cursor.fetchall()
            if not rows:
                return []

            members = await self._fetch_grouped(
                conn, "SELECT thread_id, user_id FROM thread_members ORDER BY rowid"
            )
            pending = await self._fetch_grouped(
                conn, "SELECT thread_id, user_id FROM join_requests ORDER BY rowid"
            )
            chat = await self._fetch_messages(
                conn, "SELECT * FROM chat_messages ORDER BY seq"
            )

        return [
            ThreadModel.from_row(
                row,
                members=members.get(row["thread_id"]),
                pending_requests=pending.get(row["thread_id"]),
                chat=chat.get(row["thread_id"]),
            )
            for row in rows
        ]

    async def update_fields(self, thread_id: str, fields: Dict[str, Any]) -> int:
        """Update editable columns. Returns the number of rows changed."""
        unknown = set(fields) - set(UPDATABLE_THREAD_FIELDS)
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")
        if not fields:
            return 0

        assignments = ", ".join(f"{name} = ?" for name in fields)
        values = [
            json.dumps(value) if name == "tags" else value
            for name, value in fields.items()
        ]

        async with self.db.transaction() as conn:
            cursor = await conn.execute(
                f"UPDATE threads SET {assignments} WHERE thread_id = ?",
                (*values, thread_id),
            )
            return cursor.rowcount

    async def delete_thread(self, thread_id: str) -> bool:
        """Delete a thread with its memberships, requests and chat log."""
        async with self.db.transaction() as conn:
            for table in ("chat_messages", "join_requests", "thread_members"):
                await conn.execute(
                    f"DELETE FROM {table} WHERE thread_id = ?", (thread_id,)
                )
            cursor = await conn.execute(
                "DELETE FROM threads WHERE thread_id = ?", (thread_id,)
            )
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info("Deleted thread", thread_id=thread_id)
        return deleted

    async def _fetch_grouped(
        self, conn: aiosqlite.Connection, query: str, params: tuple = ()
    ) -> Dict[str, List[str]]:
        cursor = await conn.execute(query, params)
        grouped: Dict[str, List[str]] = defaultdict(list)
        for row in await cursor.fetchall():
            grouped[row["thread_id"]].append(row["user_id"])
        return grouped

    async def _fetch_messages(
        self, conn: aiosqlite.Connection, query: str, params: tuple = ()
    ) -> Dict[str, List[ChatMessageModel]]:
        cursor = await conn.execute(query, params)
        grouped: Dict[str, List[ChatMessageModel]] = defaultdict(list)
        for row in await cursor.fetchall():
            grouped[row["thread_id"]].append(ChatMessageModel.from_row(row))
        return grouped


class MembershipRepository:
    """Join request and membership transitions."""

    def __init__(self, db_manager: DatabaseManager):
        """Initialize repository."""
        self.db = db_manager

    async def add_request(
        self, thread_id: str, user_id: str, requested_at: datetime
    ) -> None:
        """Record a pending join request."""
        async with self.db.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO join_requests (thread_id, user_id, requested_at)
                VALUES (?, ?, ?)
            """,
                (thread_id, user_id, requested_at),
            )

    async def approve_request(
        self,
        thread_id: str,
        user_id: str,
        joined_at: datetime,
        notice: ChatMessageModel,
    ) -> None:
        """Move a pending requester into members and post the join notice.

        All three writes commit together or not at all.
        """
        async with self.db.transaction() as conn:
            cursor = await conn.execute(
                "DELETE FROM join_requests WHERE thread_id = ? AND user_id = ?",
                (thread_id, user_id),
            )
            if cursor.rowcount == 0:
                raise LookupError(f"No pending request for {user_id} in {thread_id}")
            await conn.execute(
                """
                INSERT INTO thread_members (thread_id, user_id, joined_at)
                VALUES (?, ?, ?)
            """,
                (thread_id, user_id, joined_at),
            )
            notice.seq = await _insert_message(conn, notice)

    async def deny_request(self, thread_id: str, user_id: str) -> bool:
        """Drop a pending request. Returns whether one existed."""
        async with self.db.transaction() as conn:
            cursor = await conn.execute(
                "DELETE FROM join_requests WHERE thread_id = ? AND user_id = ?",
                (thread_id, user_id),
            )
            return cursor.rowcount > 0


class ChatRepository:
    """Chat log data access."""

    def __init__(self, db_manager: DatabaseManager):
        """Initialize repository."""
        self.db = db_manager

    async def append_message(self, message: ChatMessageModel) -> int:
        """Append a message and return its sequence number."""
        async with self.db.transaction() as conn:
            message.seq = await _insert_message(conn, message)
        return message.seq


async def _insert_message(conn: aiosqlite.Connection, message: ChatMessageModel) -> int:
    cursor = await conn.execute(
        """
        INSERT INTO chat_messages
        (message_id, thread_id, author_id, author_name, body, is_system, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
    """,
        (
            message.message_id,
            message.thread_id,
            message.author_id,
            message.author_name,
            message.body,
            message.is_system,
            message.created_at,
        ),
    )
    return cursor.lastrowid


class AuditLogRepository:
    """Audit log data access."""

    def __init__(self, db_manager: DatabaseManager):
        """Initialize repository."""
        self.db = db_manager

    async def log_event(self, audit_log: AuditLogModel) -> int:
        """Log audit event and return ID."""
        event_data_json = (
            json.dumps(audit_log.event_data, default=str)
            if audit_log.event_data
            else None
        )

        async with self.db.transaction() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO audit_log
                (user_id, event_type, event_data, success, timestamp)
                VALUES (?, ?, ?, ?, ?)
            """,
                (
                    audit_log.user_id,
                    audit_log.event_type,
                    event_data_json,
                    audit_log.success,
                    audit_log.timestamp,
                ),
            )
            return cursor.lastrowid

    async def get_recent_audit_log(self, limit: int = 100) -> List[AuditLogModel]:
        """Get the most recent audit log entries."""
        async with self.db.get_connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM audit_log ORDER BY id DESC LIMIT ?", (limit,)
            )
            rows = await cursor.fetchall()
            return [AuditLogModel.from_row(row) for row in rows]
