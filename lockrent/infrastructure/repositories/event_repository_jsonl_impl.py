from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Any

from lockrent.core.entities.event import Event
from lockrent.core.repositories.event_repository import EventRepository
from lockrent.infrastructure.models.models import EventStore


class JsonlEventRepositoryImpl(EventRepository):
    """
    Event repository backed by an append-only JSONL EventStore.

    The log is an outbound feed for notification/UI consumers. The service only
    appends to it; `EventStore.load_all` replays it for consumers and tests.
    """

    def __init__(self, *, file_path: str | Path) -> None:
        self._store = EventStore(Path(file_path))

    def publish(self, event: Event) -> None:
        self._store.append(self._event_to_record(event))

    @staticmethod
    def _event_to_record(event: Event) -> dict[str, Any]:
        """
        Normalize datetimes and enums for persistence
        """
        record = asdict(event)
        record["occurred_at"] = event.occurred_at.isoformat()
        record["type"] = event.type.value
        return record
