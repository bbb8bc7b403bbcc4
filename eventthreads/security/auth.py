"""Login and caller resolution.

Features:
- Username-only login for regular users (registered on first sight)
- Password-gated admin login
- Caller context lookup by user id
"""

import hmac
import sqlite3
import uuid
from typing import Optional

import structlog

from ..exceptions import AuthenticationError, NotFoundError, ValidationError
from ..storage.models import UserModel
from ..storage.repositories import UserRepository
from ..threads.context import Clock, UserContext, utc_now
from ..utils.constants import RESERVED_USERNAMES

logger = structlog.get_logger()


class AuthenticationManager:
    """Issues caller contexts; trusted by the thread core as-is."""

    def __init__(
        self,
        users: UserRepository,
        admin_password: Optional[str] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.users = users
        self.admin_password = admin_password
        self.clock = clock
        logger.info(
            "Authentication manager initialized",
            admin_login_enabled=admin_password is not None,
        )

    async def login(
        self, username: str, password: Optional[str] = None, is_admin: bool = False
    ) -> UserContext:
        """Log a user in, registering them on first login.

        Raises:
            ValidationError: blank or reserved username
            AuthenticationError: bad admin credentials, or the username is
                already registered under the other login mode
        """
        if not isinstance(username, str) or not username.strip():
            raise ValidationError("Username must not be empty")
        username = username.strip()
        if username.lower() in RESERVED_USERNAMES:
            raise ValidationError(f"Username '{username}' is reserved")

        if is_admin and not self._verify_admin_password(password):
            logger.warning("Admin login failed", username=username)
            raise AuthenticationError("Invalid admin credentials")

        user = await self.users.get_by_username(username)
        if user is None:
            user = await self._register(username, is_admin)
        # Also covers losing a registration race to the other login mode
        if user.is_admin != is_admin:
            logger.warning(
                "Login mode does not match registered user",
                username=username,
                requested_admin=is_admin,
            )
            if user.is_admin:
                raise AuthenticationError("This username requires admin login")
            raise AuthenticationError("This username is not an admin account")

        logger.info("User logged in", user_id=user.user_id, is_admin=user.is_admin)
        return UserContext.from_user(user)

    async def resolve(self, user_id: Optional[str]) -> UserContext:
        """Build the caller context for a known user id.

        The admin flag always comes from storage.
        """
        if not user_id:
            raise AuthenticationError("User id is required")
        user = await self.users.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return UserContext.from_user(user)

    async def _register(self, username: str, is_admin: bool) -> UserModel:
        try:
            return await self.users.create_user(
                UserModel(
                    user_id=uuid.uuid4().hex,
                    username=username,
                    is_admin=is_admin,
                    created_at=self.clock(),
                )
            )
        except sqlite3.IntegrityError:
            # Registered concurrently under the same name
            user = await self.users.get_by_username(username)
            if user is None:
                raise
            return user

    def _verify_admin_password(self, password: Optional[str]) -> bool:
        if self.admin_password is None:
            logger.warning("Admin login attempted but no admin password configured")
            return False
        if not password:
            return False
        return hmac.compare_digest(
            password.encode("utf-8"), self.admin_password.encode("utf-8")
        )
