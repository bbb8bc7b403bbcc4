"""Thread registry: creation, lookup, expiry filtering, edits and deletion.

Expiry is lazy. A thread whose ``expires_at`` has passed simply stops
appearing in ``list_active()``; it stays retrievable by id until someone
deletes it.
"""

import uuid
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import structlog

from ..events.bus import Event, EventBus
from ..events.types import ThreadCreatedEvent, ThreadDeletedEvent, ThreadUpdatedEvent
from ..exceptions import (
    AuthorizationError,
    NotFoundError,
    ThreadExpiredError,
    ValidationError,
)
from ..storage.facade import Storage
from ..storage.models import ThreadModel
from ..storage.repositories import UPDATABLE_THREAD_FIELDS
from ..utils.constants import DEFAULT_THREAD_DURATIONS
from .context import Clock, UserContext, utc_now
from .locks import ThreadLocks

logger = structlog.get_logger()


def require_text(field_name: str, value: Any) -> str:
    """Return ``value`` trimmed, or raise if it is blank."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name.capitalize()} must not be empty")
    return value.strip()


def normalize_tags(tags: Optional[Iterable[Any]]) -> List[str]:
    """Trim tags, drop blanks and repeat occurrences, keep first-seen order."""
    if tags is None:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    normalized: List[str] = []
    for tag in tags:
        if not isinstance(tag, str):
            raise ValidationError("Tags must be strings")
        tag = tag.strip()
        if tag and tag not in normalized:
            normalized.append(tag)
    return normalized


class ThreadRegistry:
    """Owns the thread collection."""

    def __init__(
        self,
        storage: Storage,
        locks: Optional[ThreadLocks] = None,
        allowed_durations: Sequence[int] = DEFAULT_THREAD_DURATIONS,
        clock: Clock = utc_now,
        event_bus: Optional[EventBus] = None,
    ) -> None:
        self.storage = storage
        self.locks = locks or ThreadLocks()
        self.allowed_durations = tuple(sorted(set(allowed_durations)))
        self.clock = clock
        self.event_bus = event_bus

    async def create_thread(
        self,
        caller: UserContext,
        title: str,
        description: str,
        location: str,
        tags: Optional[Iterable[str]],
        duration_hours: int,
    ) -> ThreadModel:
        """Create a thread with the caller as creator and first member.

        Raises:
            ValidationError: blank title/description/location, or a
                duration outside the allowed set
        """
        title = require_text("title", title)
        description = require_text("description", description)
        location = require_text("location", location)
        tag_list = normalize_tags(tags)
        self._check_duration(duration_hours)

        now = self.clock()
        thread = ThreadModel(
            thread_id=uuid.uuid4().hex,
            title=title,
            description=description,
            location=location,
            tags=tag_list,
            creator_id=caller.user_id,
            creator_name=caller.username,
            created_at=now,
            expires_at=now + timedelta(hours=duration_hours),
            members=[caller.user_id],
        )
        await self.storage.threads.create_thread(thread)

        await self._publish(
            ThreadCreatedEvent(
                thread_id=thread.thread_id,
                actor_id=caller.user_id,
                title=thread.title,
                duration_hours=int(duration_hours),
            )
        )
        return thread

    async def list_active(self) -> List[ThreadModel]:
        """All threads not yet expired, newest first."""
        now = self.clock()
        return [
            thread
            for thread in await self.storage.threads.list_threads()
            if thread.is_active(now)
        ]

    async def get_by_id(self, thread_id: str) -> ThreadModel:
        """Get a thread whether or not it has expired."""
        thread = await self.storage.threads.get_thread(thread_id)
        if thread is None:
            raise NotFoundError(f"Thread {thread_id} not found")
        return thread

    async def get_active(self, thread_id: str) -> ThreadModel:
        """Get a thread that is still open.

        Raises:
            NotFoundError: unknown thread
            ThreadExpiredError: thread is past its expiration time
        """
        thread = await self.get_by_id(thread_id)
        if not thread.is_active(self.clock()):
            raise ThreadExpiredError(f"Thread {thread_id} has expired")
        return thread

    async def update_thread(
        self, thread_id: str, caller: UserContext, fields: Mapping[str, Any]
    ) -> ThreadModel:
        """Apply a partial edit of title, description, location or tags.

        Only the creator may edit. Fields set to None are left untouched.
        Expiry, membership and chat never change here.
        """
        async with self.locks.hold(thread_id):
            thread = await self.get_by_id(thread_id)
            if caller.user_id != thread.creator_id:
                logger.warning(
                    "Rejected thread update from non-creator",
                    thread_id=thread_id,
                    user_id=caller.user_id,
                )
                raise AuthorizationError("Only the thread creator can edit it")
            if not thread.is_active(self.clock()):
                raise ThreadExpiredError(f"Thread {thread_id} has expired")

            changes = self._validated_changes(fields)
            if changes:
                await self.storage.threads.update_fields(thread_id, changes)
                for name, value in changes.items():
                    setattr(thread, name, value)

        if changes:
            logger.info(
                "Thread updated", thread_id=thread_id, fields=sorted(changes)
            )
            await self._publish(
                ThreadUpdatedEvent(
                    thread_id=thread_id,
                    actor_id=caller.user_id,
                    changed_fields=tuple(sorted(changes)),
                )
            )
        return thread

    async def delete_thread(
        self, thread_id: str, requester_id: str, is_requester_admin: bool
    ) -> None:
        """Remove a thread with its chat log and membership sets.

        Raises:
            NotFoundError: the thread does not exist (nothing to delete)
            AuthorizationError: requester is neither creator nor admin
        """
        async with self.locks.hold(thread_id):
            thread = await self.get_by_id(thread_id)
            is_creator = requester_id == thread.creator_id
            if not (is_creator or is_requester_admin):
                logger.warning(
                    "Rejected thread deletion",
                    thread_id=thread_id,
                    user_id=requester_id,
                )
                raise AuthorizationError(
                    "Only the thread creator or an admin can delete it"
                )

            if not await self.storage.threads.delete_thread(thread_id):
                raise NotFoundError(f"Thread {thread_id} not found")

        await self._publish(
            ThreadDeletedEvent(
                thread_id=thread_id,
                actor_id=requester_id,
                by_admin=is_requester_admin and not is_creator,
            )
        )

    def _check_duration(self, duration_hours: Any) -> None:
        if (
            isinstance(duration_hours, bool)
            or not isinstance(duration_hours, (int, float))
            or duration_hours not in self.allowed_durations
        ):
            allowed = ", ".join(str(hours) for hours in self.allowed_durations)
            raise ValidationError(
                f"Duration must be one of {allowed} hours, got {duration_hours!r}"
            )

    def _validated_changes(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        unknown = set(fields) - set(UPDATABLE_THREAD_FIELDS)
        if unknown:
            raise ValidationError(
                f"Cannot update field(s): {', '.join(sorted(unknown))}"
            )

        changes: Dict[str, Any] = {}
        for name in ("title", "description", "location"):
            if fields.get(name) is not None:
                changes[name] = require_text(name, fields[name])
        if fields.get("tags") is not None:
            changes["tags"] = normalize_tags(fields["tags"])
        return changes

    async def _publish(self, event: Event) -> None:
        if self.event_bus is not None:
            await self.event_bus.publish(event)
