"""Concrete event types published by thread operations."""

from dataclasses import dataclass
from typing import Optional

from .bus import Event


@dataclass
class ThreadEvent(Event):
    """Base for events about a single thread."""

    thread_id: str = ""
    actor_id: Optional[str] = None
    source: str = "threads"


@dataclass
class ThreadCreatedEvent(ThreadEvent):
    """A thread was created."""

    title: str = ""
    duration_hours: int = 0


@dataclass
class ThreadUpdatedEvent(ThreadEvent):
    """A creator edited thread fields."""

    changed_fields: tuple = ()


@dataclass
class ThreadDeletedEvent(ThreadEvent):
    """A thread was deleted by its creator or an admin."""

    by_admin: bool = False


@dataclass
class JoinRequestedEvent(ThreadEvent):
    """A user asked to join a thread."""


@dataclass
class JoinRequestResolvedEvent(ThreadEvent):
    """A creator approved or denied a join request."""

    requester_id: str = ""
    approved: bool = False


@dataclass
class MessagePostedEvent(ThreadEvent):
    """A chat message was appended."""

    message_id: str = ""
    is_system: bool = False
