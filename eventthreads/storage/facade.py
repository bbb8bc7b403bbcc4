"""Unified storage interface.

Provides simple API for the rest of the application.
"""

import structlog

from .database import DatabaseManager
from .repositories import (
    AuditLogRepository,
    ChatRepository,
    MembershipRepository,
    ThreadRepository,
    UserRepository,
)

logger = structlog.get_logger()


class Storage:
    """Main storage interface."""

    def __init__(self, database_url: str):
        """Initialize storage with database URL."""
        self.db_manager = DatabaseManager(database_url)
        self.users = UserRepository(self.db_manager)
        self.threads = ThreadRepository(self.db_manager)
        self.memberships = MembershipRepository(self.db_manager)
        self.chat = ChatRepository(self.db_manager)
        self.audit = AuditLogRepository(self.db_manager)

    async def initialize(self) -> None:
        """Initialize storage system."""
        logger.info("Initializing storage system")
        await self.db_manager.initialize()
        logger.info("Storage system initialized")

    async def close(self) -> None:
        """Close storage connections."""
        logger.info("Closing storage system")
        await self.db_manager.close()

    async def health_check(self) -> bool:
        """Check storage system health."""
        return await self.db_manager.health_check()
