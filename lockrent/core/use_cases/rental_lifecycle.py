from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from lockrent.core.clock import Clock, new_id, utc_now
from lockrent.core.entities.event import EventType
from lockrent.core.entities.locker import SizeClass
from lockrent.core.entities.pricing import DEFAULT_RATES, RateTable, elapsed_hours, price
from lockrent.core.entities.rental import DurationClass, PlanTier, Rental, RentalStatus, RentalType
from lockrent.core.entities.statistics import rental_completed, rental_created, rental_status_change
from lockrent.core.exceptions import InvalidState, NotFoundError, PersistenceConflict, PersistenceTimeout
from lockrent.core.repositories.location_repository import LocationRepository
from lockrent.core.repositories.rental_repository import RentalRepository
from lockrent.core.use_cases.inventory_store import InventoryStore
from lockrent.core.use_cases.notifier import EventNotifier
from lockrent.core.use_cases.statistics_aggregator import StatisticsAggregator

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UserRentals:
    current: list[Rental]
    past: list[Rental]


@dataclass(frozen=True, slots=True)
class RecoveryResult:
    released_locker_ids: list[str]


class RentalLifecycleManager:
    """
    State machine for a single rental: Pending -> Active -> Completed, or Pending -> Cancelled.

    Every status write is conditional on the status the manager read, so two
    concurrent calls for the same transition cannot both succeed: the loser
    gets InvalidState.
    """

    def __init__(
        self,
        *,
        rental_repo: RentalRepository,
        location_repo: LocationRepository,
        inventory: InventoryStore,
        statistics: StatisticsAggregator,
        notifier: EventNotifier,
        clock: Clock = utc_now,
        rates: RateTable = DEFAULT_RATES,
    ) -> None:
        self._rental_repo = rental_repo
        self._location_repo = location_repo
        self._inventory = inventory
        self._statistics = statistics
        self._notifier = notifier
        self._clock = clock
        self._rates = rates

    def request_rental(
        self,
        *,
        user_id: str,
        location_id: str,
        size_class: SizeClass,
        plan_tier: PlanTier,
        duration_class: DurationClass,
        hold: bool = False,
        rental_id: str | None = None,
        rental_type: RentalType = RentalType.INSTANT,
        reservation_id: str | None = None,
    ) -> Rental:
        """
        Instant rent: claim a locker and start the rental now.

        With `hold=True` the rental is created Pending with no locker, to be
        activated (or cancelled) once payment has gone through.
        """
        if self._location_repo.get(location_id) is None:
            raise NotFoundError("Location not found")

        now = self._clock()
        rental = Rental(
            rental_id=rental_id or new_id(),
            user_id=user_id,
            location_id=location_id,
            size_class=size_class,
            plan_tier=plan_tier,
            duration_class=duration_class,
            status=RentalStatus.PENDING,
            created_at=now,
            rental_type=rental_type,
            reservation_id=reservation_id,
        )

        if hold:
            self._rental_repo.add(rental)
            self._statistics.record(rental_created(rental))
            logger.info(f"Rental {rental.rental_id} held for user {user_id}")
            return rental

        locker = self._inventory.claim_locker(location_id, size_class, rental.rental_id)
        rental.activate(locker_id=locker.locker_id, now=now)
        rental.total_price = self._quote(rental)

        try:
            self._rental_repo.add(rental)
        except Exception:
            self._release_after_failure(locker.locker_id, rental.rental_id)
            raise

        self._statistics.record(rental_created(rental))
        logger.info(f"Rental {rental.rental_id} started on locker {locker.locker_id} for user {user_id}")
        return rental

    def activate_rental(self, rental_id: str) -> Rental:
        rental = self._load(rental_id)
        self._ensure_transition(rental, RentalStatus.ACTIVE)

        locker = self._inventory.claim_locker(rental.location_id, rental.size_class, rental.rental_id)
        rental.activate(locker_id=locker.locker_id, now=self._clock())
        rental.total_price = self._quote(rental)

        try:
            self._rental_repo.transition(rental, expected=RentalStatus.PENDING)
        except PersistenceConflict as e:
            self._release_after_failure(locker.locker_id, rental.rental_id)
            raise self._lost_race(rental_id, "activate") from e
        except Exception:
            self._release_after_failure(locker.locker_id, rental.rental_id)
            raise

        self._statistics.record(rental_status_change(RentalStatus.PENDING, RentalStatus.ACTIVE))
        logger.info(f"Rental {rental_id} activated on locker {locker.locker_id}")
        return rental

    def end_rental(self, rental_id: str) -> Rental:
        rental = self._load(rental_id)
        self._ensure_transition(rental, RentalStatus.COMPLETED)

        now = self._clock()
        rental.complete(now=now, total_price=self._final_price(rental, now))

        try:
            self._rental_repo.transition(rental, expected=RentalStatus.ACTIVE)
        except PersistenceConflict as e:
            raise self._lost_race(rental_id, "complete") from e

        if rental.locker_id is not None:
            try:
                self._inventory.release_locker(rental.locker_id, rental.rental_id)
            except PersistenceTimeout:
                # The rental is already Completed; recover_orphaned_lockers frees the unit.
                logger.error(f"Locker {rental.locker_id} not released after rental {rental_id} completed")

        self._statistics.record(rental_completed(rental))
        self._notifier.emit(
            EventType.RentalCompleted,
            rental_id=rental_id,
            user_id=rental.user_id,
            locker_id=rental.locker_id,
            total_price=str(rental.total_price),
        )
        logger.info(f"Rental {rental_id} completed, total {rental.total_price}")
        return rental

    def cancel_rental(self, rental_id: str) -> Rental:
        rental = self._load(rental_id)
        self._ensure_transition(rental, RentalStatus.CANCELLED)

        rental.cancel()
        try:
            self._rental_repo.transition(rental, expected=RentalStatus.PENDING)
        except PersistenceConflict as e:
            raise self._lost_race(rental_id, "cancel") from e

        if rental.locker_id is not None:
            self._inventory.release_locker(rental.locker_id, rental.rental_id)

        self._statistics.record(rental_status_change(RentalStatus.PENDING, RentalStatus.CANCELLED))
        self._notifier.emit(EventType.RentalCancelled, rental_id=rental_id, user_id=rental.user_id)
        logger.info(f"Rental {rental_id} cancelled")
        return rental

    def recover_orphaned_lockers(self, *, grace: timedelta = timedelta(minutes=1)) -> RecoveryResult:
        """
        Release lockers left Occupied by a rental that is not Active, e.g. after a
        crash between completing a rental and releasing its locker.

        Lockers touched within `grace` are skipped: a claim that has not yet
        written its rental row looks exactly like an orphan.
        """
        released: list[str] = []
        for locker in self._inventory.occupied_lockers(updated_before=self._clock() - grace):
            owner = self._rental_repo.get(locker.current_rental_id) if locker.current_rental_id else None
            if (
                owner is not None
                and owner.status is RentalStatus.ACTIVE
                and owner.locker_id == locker.locker_id
            ):
                continue
            if self._inventory.release_locker(locker.locker_id, locker.current_rental_id):
                logger.warning(f"Released orphaned locker {locker.locker_id} (rental {locker.current_rental_id})")
                released.append(locker.locker_id)
        return RecoveryResult(released_locker_ids=released)

    def get_rental(self, rental_id: str) -> Rental:
        return self._load(rental_id)

    def rental_started(self, rental_id: str) -> bool:
        """True once `rental_id` has a rental row or owns a locker."""
        if self._rental_repo.get(rental_id) is not None:
            return True
        return self._inventory.held_by(rental_id) is not None

    def list_user_rentals(self, user_id: str) -> UserRentals:
        rentals = self._rental_repo.list_by_user(user_id)
        return UserRentals(
            current=[r for r in rentals if not r.status.is_terminal],
            past=[r for r in rentals if r.status.is_terminal],
        )

    # -----------------------------
    # Internal helpers
    # -----------------------------
    def _load(self, rental_id: str) -> Rental:
        rental = self._rental_repo.get(rental_id)
        if rental is None:
            raise NotFoundError("Rental not found")
        return rental

    def _release_after_failure(self, locker_id: str, rental_id: str) -> None:
        logger.error(f"Could not persist rental {rental_id}, releasing locker {locker_id}")
        try:
            self._inventory.release_locker(locker_id, rental_id)
        except Exception:
            logger.error(f"Locker {locker_id} not released after failed rental {rental_id}", exc_info=True)

    @staticmethod
    def _ensure_transition(rental: Rental, target: RentalStatus) -> None:
        try:
            rental.ensure_can_transition(target)
        except ValueError as e:
            logger.warning(f"Rejected transition: {e}")
            raise InvalidState(str(e)) from e

    @staticmethod
    def _lost_race(rental_id: str, action: str) -> InvalidState:
        logger.warning(f"Concurrent update won the race to {action} rental {rental_id}")
        return InvalidState(f"Rental {rental_id!r} was modified concurrently and cannot {action}")

    def _quote(self, rental: Rental) -> Decimal | None:
        """Fixed-duration plans are priced up front. Hourly plans are priced on completion."""
        if not rental.duration_class.is_fixed:
            return None
        return price(rental.size_class, rental.plan_tier, rental.duration_class, 0.0, self._rates)

    def _final_price(self, rental: Rental, now: datetime) -> Decimal:
        if rental.duration_class.is_fixed and rental.total_price is not None:
            return rental.total_price
        hours = elapsed_hours(rental.start_time or now, now)
        return price(rental.size_class, rental.plan_tier, rental.duration_class, hours, self._rates)
