"""Caller context and clock shared by thread operations."""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Callable

from ..storage.models import UserModel

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: timezone-aware current UTC time."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class UserContext:
    """Authenticated caller passed explicitly into every core operation."""

    user_id: str
    username: str
    is_admin: bool = False

    @classmethod
    def from_user(cls, user: UserModel) -> "UserContext":
        return cls(user_id=user.user_id, username=user.username, is_admin=user.is_admin)
