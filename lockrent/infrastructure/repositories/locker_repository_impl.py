from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from lockrent.core.clock import Clock, utc_now
from lockrent.core.entities.locker import Locker, LockerStatus, SizeClass
from lockrent.core.exceptions import PersistenceConflict
from lockrent.core.repositories.locker_repository import LockerRepository
from lockrent.infrastructure.database import persistence_guard
from lockrent.infrastructure.models.models import LockerModel, as_utc


class LockerRepositoryImpl(LockerRepository):
    """
    SQLAlchemy implementation for Locker.

    Status changes are issued as a single ``UPDATE ... WHERE status = :expected``
    and committed immediately; the matched row count decides the race.
    """

    def __init__(self, db: Session, *, clock: Clock = utc_now) -> None:
        self._db = db
        self._clock = clock

    def get(self, locker_id: str) -> Locker | None:
        with persistence_guard(self._db):
            row = self._db.get(LockerModel, locker_id, populate_existing=True)
        if row is None:
            return None
        return self._to_entity(row)

    def find_available_ids(self, location_id: str, size_class: SizeClass) -> list[str]:
        q = (
            select(LockerModel.locker_id)
            .where(LockerModel.location_id == location_id)
            .where(LockerModel.size_class == size_class)
            .where(LockerModel.status == LockerStatus.AVAILABLE)
            .order_by(LockerModel.locker_id)
        )
        with persistence_guard(self._db):
            return list(self._db.scalars(q))

    def find_by_rental(self, rental_id: str) -> Locker | None:
        rows = self._list(select(LockerModel).where(LockerModel.current_rental_id == rental_id))
        return rows[0] if rows else None

    def compare_and_set(
        self,
        locker_id: str,
        *,
        expected: LockerStatus,
        new: LockerStatus,
        rental_id: str | None,
        expected_rental_id: str | None = None,
    ) -> None:
        stmt = (
            update(LockerModel)
            .where(LockerModel.locker_id == locker_id)
            .where(LockerModel.status == expected)
            .values(status=new, current_rental_id=rental_id, updated_at=self._clock())
            .execution_options(synchronize_session=False)
        )
        if expected_rental_id is not None:
            stmt = stmt.where(LockerModel.current_rental_id == expected_rental_id)

        with persistence_guard(self._db):
            result = self._db.execute(stmt)
            self._db.commit()

        if result.rowcount != 1:
            raise PersistenceConflict(f"Locker {locker_id!r} is no longer {expected.value!r}")

    def count(self, location_id: str, size_class: SizeClass, status: LockerStatus | None = None) -> int:
        q = (
            select(func.count(LockerModel.locker_id))
            .where(LockerModel.location_id == location_id)
            .where(LockerModel.size_class == size_class)
        )
        if status is not None:
            q = q.where(LockerModel.status == status)
        with persistence_guard(self._db):
            return int(self._db.scalar(q) or 0)

    def list_all(self) -> list[Locker]:
        return self._list(select(LockerModel))

    def list_by_status(self, status: LockerStatus) -> list[Locker]:
        return self._list(select(LockerModel).where(LockerModel.status == status))

    def _list(self, q) -> list[Locker]:
        q = q.order_by(LockerModel.locker_id).execution_options(populate_existing=True)
        with persistence_guard(self._db):
            return [self._to_entity(row) for row in self._db.scalars(q)]

    @staticmethod
    def _to_entity(row: LockerModel) -> Locker:
        return Locker(
            locker_id=row.locker_id,
            location_id=row.location_id,
            size_class=row.size_class,
            number=row.number,
            status=row.status,
            current_rental_id=row.current_rental_id,
            updated_at=as_utc(row.updated_at),
        )
