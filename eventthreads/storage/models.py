"""Data models for storage.

Using dataclasses for simplicity and type safety.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiosqlite


def _parse_datetime(value: Any) -> Any:
    """Parse datetime values from SQLite rows.

    With sqlite3 converters enabled, values may already be datetime instances.
    Without converters, values may be ISO strings.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


def _parse_json_list(value: Any) -> List[Any]:
    if not value:
        return []
    if isinstance(value, list):
        return value
    try:
        parsed = json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return []
    return parsed if isinstance(parsed, list) else []


@dataclass
class UserModel:
    """User data model."""

    user_id: str
    username: str
    created_at: datetime
    is_admin: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> "UserModel":
        """Create from database row."""
        data = dict(row)
        data["created_at"] = _parse_datetime(data.get("created_at"))
        data["is_admin"] = bool(data.get("is_admin", False))
        return cls(**data)


@dataclass
class ChatMessageModel:
    """A single entry in a thread's chat log.

    System notices carry no author id and the reserved author name.
    """

    message_id: str
    thread_id: str
    author_name: str
    body: str
    created_at: datetime
    author_id: Optional[str] = None
    is_system: bool = False
    seq: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> "ChatMessageModel":
        """Create from database row."""
        data = dict(row)
        data["created_at"] = _parse_datetime(data.get("created_at"))
        data["is_system"] = bool(data.get("is_system", False))
        return cls(**data)


@dataclass
class ThreadModel:
    """Thread aggregate: row fields plus membership sets and chat log."""

    thread_id: str
    title: str
    description: str
    location: str
    creator_id: str
    creator_name: str
    created_at: datetime
    expires_at: datetime
    tags: List[str] = field(default_factory=list)
    members: List[str] = field(default_factory=list)
    pending_requests: List[str] = field(default_factory=list)
    chat: List[ChatMessageModel] = field(default_factory=list)

    def is_active(self, now: datetime) -> bool:
        """Check whether the thread is still open at ``now``."""
        return now < self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = asdict(self)
        for key in ["created_at", "expires_at"]:
            data[key] = data[key].isoformat()
        data["chat"] = [message.to_dict() for message in self.chat]
        return data

    @classmethod
    def from_row(
        cls,
        row: aiosqlite.Row,
        members: Optional[List[str]] = None,
        pending_requests: Optional[List[str]] = None,
        chat: Optional[List[ChatMessageModel]] = None,
    ) -> "ThreadModel":
        """Create from a threads row and its related collections."""
        data = dict(row)
        for key in ["created_at", "expires_at"]:
            data[key] = _parse_datetime(data.get(key))
        data["tags"] = [str(tag) for tag in _parse_json_list(data.get("tags"))]
        return cls(
            **data,
            members=list(members or []),
            pending_requests=list(pending_requests or []),
            chat=list(chat or []),
        )


@dataclass
class AuditLogModel:
    """Audit log data model."""

    event_type: str
    timestamp: datetime
    user_id: Optional[str] = None
    id: Optional[int] = None
    event_data: Optional[Dict[str, Any]] = None
    success: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = asdict(self)
        if data["timestamp"]:
            data["timestamp"] = data["timestamp"].isoformat()
        if data["event_data"]:
            data["event_data"] = json.dumps(data["event_data"])
        return data

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> "AuditLogModel":
        """Create from database row."""
        data = dict(row)

        data["timestamp"] = _parse_datetime(data.get("timestamp"))
        data["success"] = bool(data.get("success", True))

        if data.get("event_data"):
            try:
                data["event_data"] = json.loads(data["event_data"])
            except (json.JSONDecodeError, TypeError):
                data["event_data"] = {}

        return cls(**data)
