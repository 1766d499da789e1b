from __future__ import annotations

import logging
from collections import Counter

from lockrent.core.clock import Clock, utc_now
from lockrent.core.entities.locker import LockerStatus, SizeClass
from lockrent.core.entities.statistics import StatisticsDelta, SystemStatistics, compute_counters
from lockrent.core.repositories.location_repository import LocationRepository
from lockrent.core.repositories.locker_repository import LockerRepository
from lockrent.core.repositories.rental_repository import RentalRepository
from lockrent.core.repositories.reservation_repository import ReservationRepository
from lockrent.core.repositories.statistics_repository import StatisticsRepository

logger = logging.getLogger(__name__)


class StatisticsAggregator:
    """
    Keeps the derived system counters.

    `record` applies deltas produced by lifecycle transitions and swallows any
    failure, so counters may drift after a partial failure. `rebuild` recounts
    everything from the lockers, rentals and reservations tables and is the
    reconciliation path for that drift. It also rebuilds the per-location
    available counts, which are the same kind of derived view.
    """

    def __init__(
        self,
        *,
        statistics_repo: StatisticsRepository,
        locker_repo: LockerRepository,
        rental_repo: RentalRepository,
        reservation_repo: ReservationRepository,
        location_repo: LocationRepository,
        clock: Clock = utc_now,
    ) -> None:
        self._statistics_repo = statistics_repo
        self._locker_repo = locker_repo
        self._rental_repo = rental_repo
        self._reservation_repo = reservation_repo
        self._location_repo = location_repo
        self._clock = clock

    def record(self, delta: StatisticsDelta) -> None:
        if not delta:
            return
        try:
            self._statistics_repo.increment(delta.changes, now=self._clock())
        except Exception:
            logger.warning(f"Statistics update lost, rebuild will repair it: {delta.changes}", exc_info=True)

    def snapshot(self) -> SystemStatistics:
        return self._statistics_repo.load()

    def rebuild(self) -> SystemStatistics:
        lockers = self._locker_repo.list_all()
        counters = compute_counters(
            lockers,
            self._rental_repo.list_all(),
            self._reservation_repo.list_all(),
        )
        self._statistics_repo.replace(counters, now=self._clock())

        available: Counter[tuple[str, SizeClass]] = Counter(
            (locker.location_id, locker.size_class)
            for locker in lockers
            if locker.status is LockerStatus.AVAILABLE
        )
        for location in self._location_repo.list_all():
            self._location_repo.set_available(
                location.location_id,
                {size: available[(location.location_id, size)] for size in SizeClass},
            )

        logger.info(f"Rebuilt statistics from {len(lockers)} lockers and {counters['rentals.total']} rentals")
        return self.snapshot()
