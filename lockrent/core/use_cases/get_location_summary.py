from __future__ import annotations

from lockrent.core.entities.location import Location
from lockrent.core.exceptions import NotFoundError
from lockrent.core.repositories.location_repository import LocationRepository


class GetLocationSummaryUseCase:
    """Reads the materialized per-size availability; it may lag the lockers table."""

    def __init__(self, *, location_repo: LocationRepository) -> None:
        self._location_repo = location_repo

    def execute(self, *, location_id: str) -> Location:
        location = self._location_repo.get(location_id)
        if location is None:
            raise NotFoundError("Location not found")
        return location

    def list_all(self) -> list[Location]:
        return self._location_repo.list_all()
