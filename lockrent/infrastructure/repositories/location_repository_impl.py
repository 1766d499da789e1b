from __future__ import annotations

from collections import defaultdict
from typing import Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from lockrent.core.clock import Clock, utc_now
from lockrent.core.entities.locker import Locker, SizeClass
from lockrent.core.entities.location import Location
from lockrent.core.repositories.location_repository import LocationRepository
from lockrent.infrastructure.database import persistence_guard
from lockrent.infrastructure.models.models import LocationInventoryModel, LocationModel, LockerModel


class LocationRepositoryImpl(LocationRepository):
    """
    SQLAlchemy implementation for locations and their per-size inventory rows.

    Inventory counts are read as plain columns, never through the identity
    map, because other sessions move them with in-place updates.
    """

    def __init__(self, db: Session, *, clock: Clock = utc_now) -> None:
        self._db = db
        self._clock = clock

    def get(self, location_id: str) -> Location | None:
        with persistence_guard(self._db):
            row = self._db.get(LocationModel, location_id)
            if row is None:
                return None
            inventory = self._inventory([location_id])
        return self._to_entity(row, inventory[location_id])

    def add(self, location: Location, lockers: Sequence[Locker] = ()) -> None:
        now = self._clock()
        row = LocationModel(
            location_id=location.location_id,
            name=location.name,
            address=location.address,
            latitude=location.latitude,
            longitude=location.longitude,
            category=location.category,
        )
        row.inventory = [
            LocationInventoryModel(
                location_id=location.location_id,
                size_class=size,
                capacity=location.capacity.get(size, 0),
                available=location.available.get(size, 0),
            )
            for size in SizeClass
        ]
        with persistence_guard(self._db):
            self._db.add(row)
            self._db.add_all(
                LockerModel(
                    locker_id=locker.locker_id,
                    location_id=locker.location_id,
                    size_class=locker.size_class,
                    number=locker.number,
                    status=locker.status,
                    current_rental_id=locker.current_rental_id,
                    updated_at=locker.updated_at or now,
                )
                for locker in lockers
            )
            self._db.commit()

    def list_all(self) -> list[Location]:
        with persistence_guard(self._db):
            rows = list(self._db.scalars(select(LocationModel).order_by(LocationModel.location_id)))
            inventory = self._inventory([row.location_id for row in rows])
        return [self._to_entity(row, inventory[row.location_id]) for row in rows]

    def adjust_available(self, location_id: str, size_class: SizeClass, delta: int) -> None:
        stmt = (
            update(LocationInventoryModel)
            .where(LocationInventoryModel.location_id == location_id)
            .where(LocationInventoryModel.size_class == size_class)
            .values(available=LocationInventoryModel.available + delta)
            .execution_options(synchronize_session=False)
        )
        with persistence_guard(self._db):
            self._db.execute(stmt)
            self._db.commit()

    def set_available(self, location_id: str, counts: dict[SizeClass, int]) -> None:
        with persistence_guard(self._db):
            for size, count in counts.items():
                self._db.execute(
                    update(LocationInventoryModel)
                    .where(LocationInventoryModel.location_id == location_id)
                    .where(LocationInventoryModel.size_class == size)
                    .values(available=count)
                    .execution_options(synchronize_session=False)
                )
            self._db.commit()

    def _inventory(self, location_ids: list[str]) -> dict[str, list[tuple[SizeClass, int, int]]]:
        q = select(
            LocationInventoryModel.location_id,
            LocationInventoryModel.size_class,
            LocationInventoryModel.capacity,
            LocationInventoryModel.available,
        ).where(LocationInventoryModel.location_id.in_(location_ids))

        by_location: dict[str, list[tuple[SizeClass, int, int]]] = defaultdict(list)
        for location_id, size, capacity, available in self._db.execute(q):
            by_location[location_id].append((size, capacity, available))
        return by_location

    @staticmethod
    def _to_entity(row: LocationModel, inventory: list[tuple[SizeClass, int, int]]) -> Location:
        return Location(
            location_id=row.location_id,
            name=row.name,
            address=row.address,
            latitude=row.latitude,
            longitude=row.longitude,
            category=row.category,
            available={size: available for size, _, available in inventory},
            capacity={size: capacity for size, capacity, _ in inventory},
        )
