from __future__ import annotations

from datetime import date

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

from lockrent.core.entities.locker import SizeClass
from lockrent.core.entities.reservation import Reservation, ReservationStatus
from lockrent.core.exceptions import PersistenceConflict
from lockrent.core.repositories.reservation_repository import ReservationRepository
from lockrent.infrastructure.database import persistence_guard
from lockrent.infrastructure.models.models import ReservationDateModel, ReservationModel, as_utc

_HOLDING = [s for s in ReservationStatus if s.holds_capacity]


class ReservationRepositoryImpl(ReservationRepository):
    """SQLAlchemy implementation for Reservation. Dates live in their own table for the capacity count."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def get(self, reservation_id: str) -> Reservation | None:
        rows = self._list(select(ReservationModel).where(ReservationModel.reservation_id == reservation_id))
        return rows[0] if rows else None

    def add(self, reservation: Reservation) -> None:
        row = ReservationModel(
            reservation_id=reservation.reservation_id,
            user_id=reservation.user_id,
            location_id=reservation.location_id,
            size_class=reservation.size_class,
            status=reservation.status,
            created_at=reservation.created_at,
            confirmed_at=reservation.confirmed_at,
            rental_id=reservation.rental_id,
        )
        row.dates = [
            ReservationDateModel(reservation_id=reservation.reservation_id, day=day)
            for day in sorted(reservation.dates)
        ]
        with persistence_guard(self._db):
            self._db.add(row)
            self._db.commit()

    def transition(self, reservation: Reservation, *, expected: ReservationStatus) -> None:
        stmt = (
            update(ReservationModel)
            .where(ReservationModel.reservation_id == reservation.reservation_id)
            .where(ReservationModel.status == expected)
            .values(
                status=reservation.status,
                confirmed_at=reservation.confirmed_at,
                rental_id=reservation.rental_id,
            )
            .execution_options(synchronize_session=False)
        )
        with persistence_guard(self._db):
            result = self._db.execute(stmt)
            self._db.commit()

        if result.rowcount != 1:
            raise PersistenceConflict(
                f"Reservation {reservation.reservation_id!r} is no longer {expected.value!r}"
            )

    def count_holding(self, location_id: str, size_class: SizeClass, day: date) -> int:
        q = (
            select(func.count(ReservationModel.reservation_id))
            .join(ReservationDateModel, ReservationDateModel.reservation_id == ReservationModel.reservation_id)
            .where(ReservationModel.location_id == location_id)
            .where(ReservationModel.size_class == size_class)
            .where(ReservationModel.status.in_(_HOLDING))
            .where(ReservationDateModel.day == day)
        )
        with persistence_guard(self._db):
            return int(self._db.scalar(q) or 0)

    def list_by_user(self, user_id: str) -> list[Reservation]:
        return self._list(
            select(ReservationModel)
            .where(ReservationModel.user_id == user_id)
            .order_by(ReservationModel.created_at.desc(), ReservationModel.reservation_id)
        )

    def list_all(self) -> list[Reservation]:
        return self._list(select(ReservationModel).order_by(ReservationModel.created_at))

    def _list(self, q) -> list[Reservation]:
        q = q.options(selectinload(ReservationModel.dates)).execution_options(populate_existing=True)
        with persistence_guard(self._db):
            return [self._to_entity(row) for row in self._db.scalars(q)]

    @staticmethod
    def _to_entity(row: ReservationModel) -> Reservation:
        return Reservation(
            reservation_id=row.reservation_id,
            user_id=row.user_id,
            location_id=row.location_id,
            size_class=row.size_class,
            status=row.status,
            created_at=as_utc(row.created_at),
            dates=frozenset(d.day for d in row.dates),
            confirmed_at=as_utc(row.confirmed_at),
            rental_id=row.rental_id,
        )
