from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from lockrent.core.entities.statistics import SystemStatistics


class StatisticsRepository(ABC):
    @abstractmethod
    def increment(self, changes: dict[str, int], *, now: datetime) -> None:
        """Apply `value = value + delta` per counter."""
        raise NotImplementedError

    @abstractmethod
    def load(self) -> SystemStatistics:
        raise NotImplementedError

    @abstractmethod
    def replace(self, counters: dict[str, int], *, now: datetime) -> None:
        raise NotImplementedError
