"""Event handlers that observe committed thread changes.

AuditHandler: records every thread event in the audit log table.
"""

from dataclasses import asdict
from typing import Any, Dict

import structlog

from ..storage.models import AuditLogModel
from ..storage.repositories import AuditLogRepository
from .bus import Event, EventBus
from .types import ThreadEvent

logger = structlog.get_logger()

_ENVELOPE_FIELDS = {"id", "timestamp", "source", "thread_id", "actor_id"}


class AuditHandler:
    """Persists thread lifecycle events for later review by operators."""

    def __init__(self, event_bus: EventBus, repository: AuditLogRepository) -> None:
        self.event_bus = event_bus
        self.repository = repository

    def register(self) -> None:
        """Subscribe to every thread event."""
        self.event_bus.subscribe(ThreadEvent, self.handle_thread_event)

    def unregister(self) -> None:
        self.event_bus.unsubscribe(self.handle_thread_event)

    async def handle_thread_event(self, event: Event) -> None:
        """Write one audit row per thread event."""
        if not isinstance(event, ThreadEvent):
            return

        await self.repository.log_event(
            AuditLogModel(
                event_type=event.event_type,
                timestamp=event.timestamp,
                user_id=event.actor_id,
                event_data=self._event_data(event),
            )
        )
        logger.debug(
            "Audit event recorded",
            event_type=event.event_type,
            thread_id=event.thread_id,
            actor_id=event.actor_id,
        )

    @staticmethod
    def _event_data(event: ThreadEvent) -> Dict[str, Any]:
        data = {
            key: value
            for key, value in asdict(event).items()
            if key not in _ENVELOPE_FIELDS
        }
        data["thread_id"] = event.thread_id
        data["event_id"] = event.id
        return data
