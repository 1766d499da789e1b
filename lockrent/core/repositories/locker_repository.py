from __future__ import annotations

from abc import ABC, abstractmethod

from lockrent.core.entities.locker import Locker, LockerStatus, SizeClass


class LockerRepository(ABC):
    @abstractmethod
    def get(self, locker_id: str) -> Locker | None:
        raise NotImplementedError

    @abstractmethod
    def find_by_rental(self, rental_id: str) -> Locker | None:
        """The locker currently owned by `rental_id`, if any."""
        raise NotImplementedError

    @abstractmethod
    def find_available_ids(self, location_id: str, size_class: SizeClass) -> list[str]:
        """Ids of lockers that were Available at read time. May be stale by the time they are used."""
        raise NotImplementedError

    @abstractmethod
    def compare_and_set(
        self,
        locker_id: str,
        *,
        expected: LockerStatus,
        new: LockerStatus,
        rental_id: str | None,
        expected_rental_id: str | None = None,
    ) -> None:
        """
        Single conditional update: set `status = new, current_rental_id = rental_id`
        only where `status == expected` (and, if given, `current_rental_id == expected_rental_id`).

        Raises PersistenceConflict when no row matched.
        """
        raise NotImplementedError

    @abstractmethod
    def count(self, location_id: str, size_class: SizeClass, status: LockerStatus | None = None) -> int:
        raise NotImplementedError

    @abstractmethod
    def list_all(self) -> list[Locker]:
        raise NotImplementedError

    @abstractmethod
    def list_by_status(self, status: LockerStatus) -> list[Locker]:
        raise NotImplementedError
