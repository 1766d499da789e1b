from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from lockrent.core.entities.locker import Locker, SizeClass
from lockrent.core.entities.location import Location


class LocationRepository(ABC):
    """
    Repository interface for locations and their materialized availability counts.
    """

    @abstractmethod
    def get(self, location_id: str) -> Location | None:
        raise NotImplementedError

    @abstractmethod
    def add(self, location: Location, lockers: Sequence[Locker] = ()) -> None:
        """Write the location, its inventory rows and its lockers in a single commit."""
        raise NotImplementedError

    @abstractmethod
    def list_all(self) -> list[Location]:
        raise NotImplementedError

    @abstractmethod
    def adjust_available(self, location_id: str, size_class: SizeClass, delta: int) -> None:
        """Increment (or decrement) the materialized available count in place."""
        raise NotImplementedError

    @abstractmethod
    def set_available(self, location_id: str, counts: dict[SizeClass, int]) -> None:
        """Overwrite the materialized available counts (used by rebuilds)."""
        raise NotImplementedError
