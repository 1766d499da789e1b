from __future__ import annotations

import logging
import random
from datetime import datetime

from lockrent.core.entities.event import EventType
from lockrent.core.entities.locker import Locker, LockerRef, LockerStatus, SizeClass
from lockrent.core.entities.statistics import locker_status_change
from lockrent.core.exceptions import InvalidState, NoInventory, NotFoundError, PersistenceConflict
from lockrent.core.repositories.location_repository import LocationRepository
from lockrent.core.repositories.locker_repository import LockerRepository
from lockrent.core.use_cases.notifier import EventNotifier
from lockrent.core.use_cases.statistics_aggregator import StatisticsAggregator

logger = logging.getLogger(__name__)


class InventoryStore:
    """
    Owns every write to `Locker.status`.

    All writes are compare-and-swap on the current status. A lost race is never
    waited on: the claimer moves on to another unit, and a release that finds
    the locker already free is a no-op.
    """

    def __init__(
        self,
        *,
        locker_repo: LockerRepository,
        location_repo: LocationRepository,
        statistics: StatisticsAggregator,
        notifier: EventNotifier,
    ) -> None:
        self._locker_repo = locker_repo
        self._location_repo = location_repo
        self._statistics = statistics
        self._notifier = notifier

    def claim_locker(self, location_id: str, size_class: SizeClass, rental_id: str) -> LockerRef:
        """
        Move one Available locker of `size_class` at `location_id` to Occupied, owned by `rental_id`.

        Candidates are tried in random order to spread concurrent claimers.
        After the first candidate list is exhausted there is exactly one re-read.
        If the claimed unit cannot be read back it is returned to Available
        before the error propagates.
        """
        for _ in range(2):
            candidates = self._locker_repo.find_available_ids(location_id, size_class)
            if not candidates:
                break
            random.shuffle(candidates)

            for locker_id in candidates:
                try:
                    self._locker_repo.compare_and_set(
                        locker_id,
                        expected=LockerStatus.AVAILABLE,
                        new=LockerStatus.OCCUPIED,
                        rental_id=rental_id,
                    )
                except PersistenceConflict:
                    logger.info(f"Lost claim race on locker {locker_id}, trying next unit")
                    continue

                try:
                    locker = self._require(locker_id)
                except Exception:
                    self._undo_claim(locker_id, rental_id)
                    raise

                self._after_status_change(locker, LockerStatus.AVAILABLE, LockerStatus.OCCUPIED)
                self._notifier.emit(
                    EventType.LockerClaimed,
                    locker_id=locker_id,
                    location_id=location_id,
                    size_class=size_class.value,
                    rental_id=rental_id,
                )
                logger.info(f"Locker {locker_id} claimed by rental {rental_id}")
                return locker.ref()

        raise NoInventory(location_id, size_class.value)

    def release_locker(self, locker_id: str, rental_id: str | None = None) -> bool:
        """
        Occupied -> Available. Returns False (no error) when there was nothing to release.

        With `rental_id` the locker is only released while that rental still owns it.
        """
        locker = self._require(locker_id)
        if locker.status is not LockerStatus.OCCUPIED:
            return False

        try:
            self._locker_repo.compare_and_set(
                locker_id,
                expected=LockerStatus.OCCUPIED,
                new=LockerStatus.AVAILABLE,
                rental_id=None,
                expected_rental_id=rental_id,
            )
        except PersistenceConflict:
            return False

        self._after_status_change(locker, LockerStatus.OCCUPIED, LockerStatus.AVAILABLE)
        self._notifier.emit(
            EventType.LockerReleased,
            locker_id=locker_id,
            location_id=locker.location_id,
            size_class=locker.size_class.value,
            rental_id=locker.current_rental_id,
        )
        logger.info(f"Locker {locker_id} released")
        return True

    def held_by(self, rental_id: str) -> Locker | None:
        return self._locker_repo.find_by_rental(rental_id)

    def get_available_count(self, location_id: str, size_class: SizeClass) -> int:
        return self._locker_repo.count(location_id, size_class, LockerStatus.AVAILABLE)

    def start_maintenance(self, locker_id: str) -> Locker:
        return self._move(locker_id, LockerStatus.AVAILABLE, LockerStatus.MAINTENANCE)

    def end_maintenance(self, locker_id: str) -> Locker:
        return self._move(locker_id, LockerStatus.MAINTENANCE, LockerStatus.AVAILABLE)

    def occupied_lockers(self, *, updated_before: datetime | None = None) -> list[Locker]:
        lockers = self._locker_repo.list_by_status(LockerStatus.OCCUPIED)
        if updated_before is None:
            return lockers
        return [locker for locker in lockers if locker.updated_at is None or locker.updated_at < updated_before]

    # -----------------------------
    # Internal helpers
    # -----------------------------
    def _require(self, locker_id: str) -> Locker:
        locker = self._locker_repo.get(locker_id)
        if locker is None:
            raise NotFoundError("Locker not found")
        return locker

    def _undo_claim(self, locker_id: str, rental_id: str) -> None:
        """Hand a freshly claimed unit back when the claim cannot be completed."""
        try:
            self._locker_repo.compare_and_set(
                locker_id,
                expected=LockerStatus.OCCUPIED,
                new=LockerStatus.AVAILABLE,
                rental_id=None,
                expected_rental_id=rental_id,
            )
        except Exception:
            logger.error(f"Locker {locker_id} left Occupied by unfinished rental {rental_id}", exc_info=True)
            return
        logger.warning(f"Claim of locker {locker_id} by rental {rental_id} rolled back")

    def _move(self, locker_id: str, old: LockerStatus, new: LockerStatus) -> Locker:
        locker = self._require(locker_id)
        try:
            self._locker_repo.compare_and_set(locker_id, expected=old, new=new, rental_id=None)
        except PersistenceConflict as e:
            current = self._require(locker_id).status
            logger.warning(f"Rejected {old.value} -> {new.value} on locker {locker_id} in status {current.value}")
            raise InvalidState(
                f"Locker {locker_id!r} is {current.value!r}, expected {old.value!r}"
            ) from e

        self._after_status_change(locker, old, new)
        return self._require(locker_id)

    def _after_status_change(self, locker: Locker, old: LockerStatus, new: LockerStatus) -> None:
        self._statistics.record(locker_status_change(old, new))

        delta = (new is LockerStatus.AVAILABLE) - (old is LockerStatus.AVAILABLE)
        if delta:
            try:
                self._location_repo.adjust_available(locker.location_id, locker.size_class, delta)
            except Exception:
                logger.warning(
                    f"Available count for {locker.location_id}/{locker.size_class.value} not adjusted",
                    exc_info=True,
                )
