"""Membership & chat engine.

Per (thread, user) the membership status moves
``NONE -> PENDING -> MEMBER``, or ``PENDING -> NONE`` on denial. Only the
creator enters ``MEMBER`` directly, at creation. Every transition and
chat append runs under the thread's lock, and its writes commit in one
transaction, so a failed check never leaves partial state behind.
"""

import uuid
from dataclasses import replace
from enum import Enum
from typing import Optional

import structlog

from ..events.bus import Event, EventBus
from ..events.types import (
    JoinRequestedEvent,
    JoinRequestResolvedEvent,
    MessagePostedEvent,
)
from ..exceptions import AuthorizationError, ConflictError, ValidationError
from ..storage.models import ChatMessageModel, ThreadModel
from ..utils.constants import JOIN_NOTICE_TEMPLATE, SYSTEM_AUTHOR
from .context import UserContext
from .display import display_name
from .registry import ThreadRegistry

logger = structlog.get_logger()


class MembershipStatus(str, Enum):
    """Where a user stands with respect to one thread."""

    NONE = "none"
    PENDING = "pending"
    MEMBER = "member"


class CallerRole(str, Enum):
    """Role of a caller relative to one thread, strongest first."""

    CREATOR = "creator"
    MEMBER = "member"
    ADMIN = "admin"
    PENDING = "pending"
    NON_MEMBER = "non_member"


class MembershipEngine:
    """Join requests, approvals, chat admission and access checks."""

    def __init__(
        self, registry: ThreadRegistry, event_bus: Optional[EventBus] = None
    ) -> None:
        self.registry = registry
        self.storage = registry.storage
        self.locks = registry.locks
        self.clock = registry.clock
        self.event_bus = event_bus if event_bus is not None else registry.event_bus

    # Queries

    @staticmethod
    def membership_status(thread: ThreadModel, user_id: str) -> MembershipStatus:
        if user_id in thread.members:
            return MembershipStatus.MEMBER
        if user_id in thread.pending_requests:
            return MembershipStatus.PENDING
        return MembershipStatus.NONE

    @classmethod
    def is_member(cls, thread: ThreadModel, user_id: str) -> bool:
        return cls.membership_status(thread, user_id) is MembershipStatus.MEMBER

    @classmethod
    def role_of(cls, thread: ThreadModel, caller: UserContext) -> CallerRole:
        """Resolve the caller's role. Membership outranks the admin flag."""
        if caller.user_id == thread.creator_id:
            return CallerRole.CREATOR
        status = cls.membership_status(thread, caller.user_id)
        if status is MembershipStatus.MEMBER:
            return CallerRole.MEMBER
        if caller.is_admin:
            return CallerRole.ADMIN
        if status is MembershipStatus.PENDING:
            return CallerRole.PENDING
        return CallerRole.NON_MEMBER

    @classmethod
    def can_view_chat(cls, thread: ThreadModel, caller: UserContext) -> bool:
        return cls.role_of(thread, caller) in (
            CallerRole.CREATOR,
            CallerRole.MEMBER,
            CallerRole.ADMIN,
        )

    @classmethod
    def can_post(cls, thread: ThreadModel, caller: UserContext) -> bool:
        return cls.is_member(thread, caller.user_id)

    @classmethod
    def can_request_join(cls, thread: ThreadModel, caller: UserContext) -> bool:
        return cls.membership_status(thread, caller.user_id) is MembershipStatus.NONE

    @classmethod
    def view_thread(cls, thread: ThreadModel, caller: UserContext) -> ThreadModel:
        """Copy of ``thread`` with the chat withheld from callers who can't see it."""
        if cls.can_view_chat(thread, caller):
            return thread
        return replace(thread, chat=[])

    # Transitions

    async def request_join(self, thread_id: str, caller: UserContext) -> None:
        """Move the caller from NONE to PENDING.

        Raises:
            NotFoundError: unknown thread
            ThreadExpiredError: thread has expired
            ConflictError: caller is already a member or already pending
        """
        async with self.locks.hold(thread_id):
            thread = await self.registry.get_active(thread_id)
            status = self.membership_status(thread, caller.user_id)
            if status is MembershipStatus.MEMBER:
                raise ConflictError("You are already a member of this thread")
            if status is MembershipStatus.PENDING:
                raise ConflictError("Your join request is already pending")

            await self.storage.memberships.add_request(
                thread_id, caller.user_id, self.clock()
            )

        logger.info("Join requested", thread_id=thread_id, user_id=caller.user_id)
        await self._publish(
            JoinRequestedEvent(thread_id=thread_id, actor_id=caller.user_id)
        )

    async def resolve_request(
        self,
        thread_id: str,
        requester_user_id: str,
        approve: bool,
        caller: UserContext,
    ) -> Optional[ChatMessageModel]:
        """Approve or deny a pending request. Creator only.

        Approval admits the requester and appends one System notice, which
        is returned. Denial only drops the request and returns None.

        Raises:
            NotFoundError: unknown thread
            ThreadExpiredError: thread has expired
            AuthorizationError: caller is not the creator
            ConflictError: requester has no pending request
        """
        notice: Optional[ChatMessageModel] = None

        async with self.locks.hold(thread_id):
            thread = await self.registry.get_active(thread_id)
            if caller.user_id != thread.creator_id:
                logger.warning(
                    "Rejected request resolution from non-creator",
                    thread_id=thread_id,
                    user_id=caller.user_id,
                )
                raise AuthorizationError(
                    "Only the thread creator can resolve join requests"
                )
            status = self.membership_status(thread, requester_user_id)
            if status is not MembershipStatus.PENDING:
                raise ConflictError("There is no pending request from this user")

            if approve:
                users = await self.storage.users.get_users([requester_user_id])
                now = self.clock()
                notice = ChatMessageModel(
                    message_id=uuid.uuid4().hex,
                    thread_id=thread_id,
                    author_name=SYSTEM_AUTHOR,
                    author_id=None,
                    body=JOIN_NOTICE_TEMPLATE.format(
                        name=display_name(requester_user_id, users)
                    ),
                    created_at=now,
                    is_system=True,
                )
                await self.storage.memberships.approve_request(
                    thread_id, requester_user_id, now, notice
                )
            else:
                await self.storage.memberships.deny_request(
                    thread_id, requester_user_id
                )

        logger.info(
            "Join request resolved",
            thread_id=thread_id,
            requester_id=requester_user_id,
            approved=approve,
        )
        await self._publish(
            JoinRequestResolvedEvent(
                thread_id=thread_id,
                actor_id=caller.user_id,
                requester_id=requester_user_id,
                approved=approve,
            )
        )
        if notice is not None:
            await self._publish(
                MessagePostedEvent(
                    thread_id=thread_id,
                    message_id=notice.message_id,
                    is_system=True,
                )
            )
        return notice

    async def post_message(
        self, thread_id: str, caller: UserContext, text: str
    ) -> ChatMessageModel:
        """Append a message authored by the caller.

        The server assigns the id and timestamp.

        Raises:
            NotFoundError: unknown thread
            ThreadExpiredError: thread has expired
            AuthorizationError: caller is not a member
            ValidationError: text is blank
        """
        async with self.locks.hold(thread_id):
            thread = await self.registry.get_active(thread_id)
            if not self.can_post(thread, caller):
                raise AuthorizationError("Only members can post in this thread")
            if not isinstance(text, str) or not text.strip():
                raise ValidationError("Message must not be empty")

            message = ChatMessageModel(
                message_id=uuid.uuid4().hex,
                thread_id=thread_id,
                author_name=caller.username,
                author_id=caller.user_id,
                body=text.strip(),
                created_at=self.clock(),
            )
            await self.storage.chat.append_message(message)

        await self._publish(
            MessagePostedEvent(
                thread_id=thread_id,
                actor_id=caller.user_id,
                message_id=message.message_id,
            )
        )
        return message

    async def _publish(self, event: Event) -> None:
        if self.event_bus is not None:
            await self.event_bus.publish(event)
