from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from lockrent.core.entities.pricing import from_cents, to_cents
from lockrent.core.entities.rental import Rental, RentalStatus
from lockrent.core.exceptions import PersistenceConflict
from lockrent.core.repositories.rental_repository import RentalRepository
from lockrent.infrastructure.database import persistence_guard
from lockrent.infrastructure.models.models import RentalModel, as_utc


class RentalRepositoryImpl(RentalRepository):
    """SQLAlchemy implementation for Rental."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def get(self, rental_id: str) -> Rental | None:
        with persistence_guard(self._db):
            row = self._db.get(RentalModel, rental_id, populate_existing=True)
        if row is None:
            return None
        return self._to_entity(row)

    def add(self, rental: Rental) -> None:
        row = RentalModel(
            rental_id=rental.rental_id,
            user_id=rental.user_id,
            location_id=rental.location_id,
            size_class=rental.size_class,
            plan_tier=rental.plan_tier,
            duration_class=rental.duration_class,
            rental_type=rental.rental_type,
            reservation_id=rental.reservation_id,
            created_at=rental.created_at,
            **self._mutable(rental),
        )
        with persistence_guard(self._db):
            self._db.add(row)
            self._db.commit()

    def transition(self, rental: Rental, *, expected: RentalStatus) -> None:
        stmt = (
            update(RentalModel)
            .where(RentalModel.rental_id == rental.rental_id)
            .where(RentalModel.status == expected)
            .values(**self._mutable(rental))
            .execution_options(synchronize_session=False)
        )
        with persistence_guard(self._db):
            result = self._db.execute(stmt)
            self._db.commit()

        if result.rowcount != 1:
            raise PersistenceConflict(f"Rental {rental.rental_id!r} is no longer {expected.value!r}")

    def list_by_user(self, user_id: str) -> list[Rental]:
        q = (
            select(RentalModel)
            .where(RentalModel.user_id == user_id)
            .order_by(RentalModel.created_at.desc(), RentalModel.rental_id)
            .execution_options(populate_existing=True)
        )
        with persistence_guard(self._db):
            return [self._to_entity(row) for row in self._db.scalars(q)]

    def list_all(self) -> list[Rental]:
        q = select(RentalModel).order_by(RentalModel.created_at).execution_options(populate_existing=True)
        with persistence_guard(self._db):
            return [self._to_entity(row) for row in self._db.scalars(q)]

    @staticmethod
    def _mutable(rental: Rental) -> dict:
        return {
            "status": rental.status,
            "locker_id": rental.locker_id,
            "start_time": rental.start_time,
            "end_time": rental.end_time,
            "total_price_cents": None if rental.total_price is None else to_cents(rental.total_price),
        }

    @staticmethod
    def _to_entity(row: RentalModel) -> Rental:
        return Rental(
            rental_id=row.rental_id,
            user_id=row.user_id,
            location_id=row.location_id,
            size_class=row.size_class,
            plan_tier=row.plan_tier,
            duration_class=row.duration_class,
            status=row.status,
            created_at=as_utc(row.created_at),
            rental_type=row.rental_type,
            reservation_id=row.reservation_id,
            locker_id=row.locker_id,
            start_time=as_utc(row.start_time),
            end_time=as_utc(row.end_time),
            total_price=None if row.total_price_cents is None else from_cents(row.total_price_cents),
        )
