from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from lockrent.core.entities.statistics import SystemStatistics, empty_counters
from lockrent.core.repositories.statistics_repository import StatisticsRepository
from lockrent.infrastructure.database import persistence_guard
from lockrent.infrastructure.models.models import StatisticsCounterModel, as_utc


class StatisticsRepositoryImpl(StatisticsRepository):
    """
    One row per counter.

    Increments are ``value = value + :delta`` in SQL so concurrent writers
    never overwrite each other's contribution.
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    def increment(self, changes: dict[str, int], *, now: datetime) -> None:
        with persistence_guard(self._db):
            for name, delta in sorted(changes.items()):
                if delta:
                    self._write(name, StatisticsCounterModel.value + delta, delta, now)
            self._db.commit()

    def load(self) -> SystemStatistics:
        q = select(StatisticsCounterModel).execution_options(populate_existing=True)
        with persistence_guard(self._db):
            rows = list(self._db.scalars(q))

        counters = empty_counters()
        counters.update({row.name: row.value for row in rows})
        stamps = [as_utc(row.updated_at) for row in rows if row.updated_at is not None]
        return SystemStatistics(counters=counters, updated_at=max(stamps) if stamps else None)

    def replace(self, counters: dict[str, int], *, now: datetime) -> None:
        with persistence_guard(self._db):
            self._db.execute(
                delete(StatisticsCounterModel)
                .where(StatisticsCounterModel.name.not_in(list(counters)))
                .execution_options(synchronize_session=False)
            )
            for name, value in sorted(counters.items()):
                self._write(name, value, value, now)
            self._db.commit()

    def _write(self, name: str, expr, initial: int, now: datetime) -> None:
        result = self._db.execute(
            update(StatisticsCounterModel)
            .where(StatisticsCounterModel.name == name)
            .values(value=expr, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self._db.add(StatisticsCounterModel(name=name, value=initial, updated_at=now))
            self._db.flush()
