from __future__ import annotations

from abc import ABC, abstractmethod

from lockrent.core.entities.event import Event


class EventRepository(ABC):
    @abstractmethod
    def publish(self, event: Event) -> None:
        """Hand an event to whoever displays it. Consumers are not known to the core."""
        raise NotImplementedError
