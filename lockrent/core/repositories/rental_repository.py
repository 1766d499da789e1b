from __future__ import annotations

from abc import ABC, abstractmethod

from lockrent.core.entities.rental import Rental, RentalStatus


class RentalRepository(ABC):
    @abstractmethod
    def get(self, rental_id: str) -> Rental | None:
        raise NotImplementedError

    @abstractmethod
    def add(self, rental: Rental) -> None:
        raise NotImplementedError

    @abstractmethod
    def transition(self, rental: Rental, *, expected: RentalStatus) -> None:
        """
        Persist the mutable fields of `rental` only if the stored status is still `expected`.

        Raises PersistenceConflict when another writer moved the rental first.
        """
        raise NotImplementedError

    @abstractmethod
    def list_by_user(self, user_id: str) -> list[Rental]:
        """Newest first."""
        raise NotImplementedError

    @abstractmethod
    def list_all(self) -> list[Rental]:
        raise NotImplementedError
