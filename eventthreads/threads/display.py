"""Display-name resolution for user ids."""

from typing import Mapping, Optional

from ..storage.models import UserModel
from ..utils.constants import GUEST_NAME_PREFIX, GUEST_NAME_SUFFIX_LENGTH


def fallback_name(user_id: str) -> str:
    """Name shown for an id with no stored user. Neither unique nor stable."""
    return f"{GUEST_NAME_PREFIX}{user_id[-GUEST_NAME_SUFFIX_LENGTH:]}"


def display_name(user_id: str, users: Mapping[str, UserModel]) -> str:
    user: Optional[UserModel] = users.get(user_id)
    return user.username if user else fallback_name(user_id)
