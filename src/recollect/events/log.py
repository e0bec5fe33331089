"""Persist-then-publish recording of session diagnostic events."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from recollect.events.bus import EventBus, SessionEventType
from recollect.models.session import SessionEvent
from recollect.store.base import StorageAdapter

logger = structlog.get_logger("recollect.events")


class EventRecorder:
    """
    Appends session events to storage, then publishes them on the bus.

    Handlers only ever see events that were persisted successfully; a storage
    failure propagates to the caller and nothing is published.
    """

    def __init__(self, storage: StorageAdapter, bus: EventBus) -> None:
        self._storage = storage
        self._bus = bus

    @property
    def bus(self) -> EventBus:
        return self._bus

    async def record(
        self,
        session_id: str,
        event_type: SessionEventType,
        payload: Mapping[str, Any],
    ) -> SessionEvent:
        event = SessionEvent(session_id=session_id, type=str(event_type), payload=dict(payload))
        await self._storage.append_event(event)
        logger.debug(
            "session_event", session_id=session_id, event_type=event.type, event_id=event.id
        )
        self._bus.publish(event)
        return event
