from __future__ import annotations

import logging
from typing import Any

from lockrent.core.clock import Clock, utc_now
from lockrent.core.entities.event import Event, EventType
from lockrent.core.repositories.event_repository import EventRepository

logger = logging.getLogger(__name__)


class EventNotifier:
    """
    Emits lifecycle events for the notification/UI layer.

    Publishing is fire-and-forget: a failing sink is logged and never fails
    the transition that produced the event.
    """

    def __init__(self, *, event_repo: EventRepository, clock: Clock = utc_now) -> None:
        self._event_repo = event_repo
        self._clock = clock

    def emit(self, event_type: EventType, **payload: Any) -> None:
        event = Event.new(event_type, occurred_at=self._clock(), **payload)
        try:
            self._event_repo.publish(event)
        except Exception:
            logger.warning(f"Dropped {event_type.value} event {event.event_id}", exc_info=True)
