"""Event bus for observing committed thread changes."""

from .bus import Event, EventBus
from .handlers import AuditHandler
from .types import (
    JoinRequestedEvent,
    JoinRequestResolvedEvent,
    MessagePostedEvent,
    ThreadCreatedEvent,
    ThreadDeletedEvent,
    ThreadEvent,
    ThreadUpdatedEvent,
)

__all__ = [
    "Event",
    "EventBus",
    "AuditHandler",
    "ThreadEvent",
    "ThreadCreatedEvent",
    "ThreadUpdatedEvent",
    "ThreadDeletedEvent",
    "JoinRequestedEvent",
    "JoinRequestResolvedEvent",
    "MessagePostedEvent",
]
