from __future__ import annotations

from dataclasses import dataclass

from lockrent.core.entities.locker import Locker, LockerStatus, SizeClass
from lockrent.core.exceptions import NotFoundError
from lockrent.core.repositories.locker_repository import LockerRepository


@dataclass(frozen=True, slots=True)
class LockerStatusDTO:
    """
    Use-case return type for GET /lockers/{locker_id}
    """
    locker_id: str
    location_id: str
    number: str
    size_class: SizeClass
    dimensions: str
    status: LockerStatus
    current_rental_id: str | None


class GetLockerStatusUseCase:
    def __init__(self, *, locker_repo: LockerRepository) -> None:
        self._locker_repo = locker_repo

    def execute(self, *, locker_id: str) -> LockerStatusDTO:
        locker: Locker | None = self._locker_repo.get(locker_id)
        if locker is None:
            raise NotFoundError("Locker not found")

        return LockerStatusDTO(
            locker_id=locker.locker_id,
            location_id=locker.location_id,
            number=locker.number,
            size_class=locker.size_class,
            dimensions=locker.size_class.dimensions,
            status=locker.status,
            current_rental_id=locker.current_rental_id,
        )
