"""Admin view projection.

Read-only aggregation over the registry and user store. Its one write,
``delete_thread``, is a pass-through to the registry with the admin flag.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

import structlog

from ..exceptions import AuthorizationError
from ..storage.models import ThreadModel, UserModel
from .context import UserContext
from .display import display_name
from .registry import ThreadRegistry

logger = structlog.get_logger()


@dataclass
class MemberDetail:
    user_id: str
    username: str


@dataclass
class ThreadDetail:
    """An active thread with its member ids resolved to names."""

    thread: ThreadModel
    member_details: List[MemberDetail] = field(default_factory=list)


@dataclass
class AdminDashboard:
    total_threads: int
    active_users: int
    total_users: int
    threads: List[ThreadDetail]
    users: List[UserModel]

    def summary(self) -> Dict[str, Any]:
        return {
            "total_threads": self.total_threads,
            "active_users": self.active_users,
            "total_users": self.total_users,
        }


class AdminProjection:
    """Composes registry and user data for the admin dashboard."""

    def __init__(self, registry: ThreadRegistry) -> None:
        self.registry = registry
        self.storage = registry.storage

    async def dashboard(self, caller: UserContext) -> AdminDashboard:
        """Aggregate counts, the user list and per-thread member names.

        ``active_users`` counts users who are a member of at least one
        active thread. Expired threads are left out entirely.
        """
        self._require_admin(caller)

        threads = await self.registry.list_active()
        users = await self.storage.users.get_all_users()
        users_by_id = {user.user_id: user for user in users}

        active_member_ids = {
            member_id for thread in threads for member_id in thread.members
        }
        details = [
            ThreadDetail(
                thread=thread,
                member_details=[
                    MemberDetail(
                        user_id=member_id,
                        username=display_name(member_id, users_by_id),
                    )
                    for member_id in thread.members
                ],
            )
            for thread in threads
        ]

        dashboard = AdminDashboard(
            total_threads=len(threads),
            active_users=len(active_member_ids),
            total_users=len(users),
            threads=details,
            users=users,
        )
        logger.debug("Admin dashboard composed", **dashboard.summary())
        return dashboard

    async def delete_thread(self, caller: UserContext, thread_id: str) -> None:
        """Delete any thread on behalf of an admin."""
        self._require_admin(caller)
        await self.registry.delete_thread(
            thread_id, caller.user_id, is_requester_admin=True
        )
        logger.info(
            "Admin deleted thread", thread_id=thread_id, admin_id=caller.user_id
        )

    @staticmethod
    def _require_admin(caller: UserContext) -> None:
        if not caller.is_admin:
            raise AuthorizationError("Admin access required")
