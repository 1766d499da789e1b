from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date

from lockrent.core.entities.locker import SizeClass
from lockrent.core.entities.reservation import Reservation, ReservationStatus


class ReservationRepository(ABC):
    @abstractmethod
    def get(self, reservation_id: str) -> Reservation | None:
        raise NotImplementedError

    @abstractmethod
    def add(self, reservation: Reservation) -> None:
        raise NotImplementedError

    @abstractmethod
    def transition(self, reservation: Reservation, *, expected: ReservationStatus) -> None:
        """Conditional write on status. Raises PersistenceConflict if the status moved."""
        raise NotImplementedError

    @abstractmethod
    def count_holding(self, location_id: str, size_class: SizeClass, day: date) -> int:
        """Pending + Confirmed reservations covering `day`."""
        raise NotImplementedError

    @abstractmethod
    def list_by_user(self, user_id: str) -> list[Reservation]:
        raise NotImplementedError

    @abstractmethod
    def list_all(self) -> list[Reservation]:
        raise NotImplementedError
