from __future__ import annotations

from typing import Mapping

from lockrent.core.entities.locker import Locker, LockerStatus, SizeClass
from lockrent.core.entities.location import Location, LocationCategory
from lockrent.core.entities.statistics import StatisticsDelta, lockers_provisioned
from lockrent.core.exceptions import ValidationError
from lockrent.core.repositories.location_repository import LocationRepository
from lockrent.core.use_cases.statistics_aggregator import StatisticsAggregator


class ProvisionLocationUseCase:
    """
    Create a location with its fixed locker inventory.

    Lockers are numbered sequentially across sizes (Small first) and get the id
    ``<location_id>-<NNN>``.

    The location and its lockers are written together, so a failed write
    leaves nothing behind and can simply be retried.
    """

    def __init__(
        self,
        *,
        location_repo: LocationRepository,
        statistics: StatisticsAggregator,
    ) -> None:
        self._location_repo = location_repo
        self._statistics = statistics

    def execute(
        self,
        *,
        location_id: str,
        name: str,
        address: str,
        latitude: float,
        longitude: float,
        lockers: Mapping[SizeClass, int],
        category: LocationCategory | None = None,
    ) -> Location:
        if not location_id:
            raise ValidationError("location_id must be a non-empty string")
        if self._location_repo.get(location_id) is not None:
            raise ValidationError(f"Location {location_id!r} already exists")
        if any(count < 0 for count in lockers.values()):
            raise ValidationError("Locker counts must be non-negative")

        counts = {size: int(lockers.get(size, 0)) for size in SizeClass}
        location = Location(
            location_id=location_id,
            name=name,
            address=address,
            latitude=latitude,
            longitude=longitude,
            category=category,
            available=dict(counts),
            capacity=dict(counts),
        )

        units: list[Locker] = []
        delta = StatisticsDelta()
        for size in SizeClass:
            for _ in range(counts[size]):
                number = f"{len(units) + 1:03d}"
                units.append(
                    Locker(
                        locker_id=f"{location_id}-{number}",
                        location_id=location_id,
                        size_class=size,
                        number=number,
                        status=LockerStatus.AVAILABLE,
                    )
                )
            if counts[size]:
                delta = delta + lockers_provisioned(size, counts[size])

        self._location_repo.add(location, units)
        self._statistics.record(delta)
        return location
