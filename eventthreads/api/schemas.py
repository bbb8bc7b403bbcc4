"""Request and response payloads for the HTTP API.

Wire fields are camelCase; timestamps serialize as ISO-8601 strings.
"""

from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..storage.models import ChatMessageModel, ThreadModel, UserModel
from ..threads.admin import AdminDashboard, ThreadDetail
from ..threads.context import UserContext


class _Payload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# Requests


class LoginRequest(_Payload):
    username: str
    password: Optional[str] = None
    is_admin: bool = False


class CreateThreadRequest(_Payload):
    title: str
    description: str
    location: str
    creator_id: str
    tags: Union[List[str], str] = Field(default_factory=list)
    duration_hours: Optional[int] = None
    # Legacy clients send an absolute expiry instead of a duration
    expires_at: Optional[datetime] = None
    creator: Optional[str] = None


class UpdateThreadRequest(_Payload):
    user_id: str
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    tags: Optional[Union[List[str], str]] = None

    def changes(self) -> dict:
        return self.model_dump(
            include={"title", "description", "location", "tags"}, exclude_none=True
        )


class UserRequest(_Payload):
    user_id: str


class ResolveRequestBody(_Payload):
    user_id: str
    approve: bool
    current_user_id: str


class PostMessageRequest(_Payload):
    user_id: str
    message: str
    user: Optional[str] = None


# Responses


class UserOut(_Payload):
    id: str
    username: str
    is_admin: bool
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, user: UserModel) -> "UserOut":
        return cls(
            id=user.user_id,
            username=user.username,
            is_admin=user.is_admin,
            created_at=user.created_at,
        )

    @classmethod
    def from_context(cls, caller: UserContext) -> "UserOut":
        return cls(
            id=caller.user_id, username=caller.username, is_admin=caller.is_admin
        )


class MessageOut(_Payload):
    id: str
    user: str
    user_id: Optional[str]
    message: str
    timestamp: datetime
    is_system: bool

    @classmethod
    def from_model(cls, message: ChatMessageModel) -> "MessageOut":
        return cls(
            id=message.message_id,
            user=message.author_name,
            user_id=message.author_id,
            message=message.body,
            timestamp=message.created_at,
            is_system=message.is_system,
        )


class ThreadOut(_Payload):
    id: str
    title: str
    description: str
    location: str
    tags: List[str]
    creator: str
    creator_id: str
    created_at: datetime
    expires_at: datetime
    members: List[str]
    pending_requests: List[str]
    chat: List[MessageOut]

    @classmethod
    def from_model(cls, thread: ThreadModel) -> "ThreadOut":
        return cls(**cls._fields_from(thread))

    @staticmethod
    def _fields_from(thread: ThreadModel) -> dict:
        return dict(
            id=thread.thread_id,
            title=thread.title,
            description=thread.description,
            location=thread.location,
            tags=thread.tags,
            creator=thread.creator_name,
            creator_id=thread.creator_id,
            created_at=thread.created_at,
            expires_at=thread.expires_at,
            members=thread.members,
            pending_requests=thread.pending_requests,
            chat=[MessageOut.from_model(message) for message in thread.chat],
        )


class MemberOut(_Payload):
    id: str
    username: str


class AdminThreadOut(ThreadOut):
    member_details: List[MemberOut]

    @classmethod
    def from_detail(cls, detail: ThreadDetail) -> "AdminThreadOut":
        return cls(
            **cls._fields_from(detail.thread),
            member_details=[
                MemberOut(id=member.user_id, username=member.username)
                for member in detail.member_details
            ],
        )


class DashboardOut(_Payload):
    total_threads: int
    active_users: int
    total_users: int
    threads: List[AdminThreadOut]
    users: List[UserOut]

    @classmethod
    def from_dashboard(cls, dashboard: AdminDashboard) -> "DashboardOut":
        return cls(
            total_threads=dashboard.total_threads,
            active_users=dashboard.active_users,
            total_users=dashboard.total_users,
            threads=[AdminThreadOut.from_detail(d) for d in dashboard.threads],
            users=[UserOut.from_model(user) for user in dashboard.users],
        )
