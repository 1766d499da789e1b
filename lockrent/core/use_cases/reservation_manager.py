from __future__ import annotations

import logging
from datetime import date
from typing import Iterable

from lockrent.core.clock import Clock, new_id, utc_now
from lockrent.core.entities.event import EventType
from lockrent.core.entities.locker import SizeClass
from lockrent.core.entities.rental import DurationClass, PlanTier, Rental, RentalType
from lockrent.core.entities.reservation import Reservation, ReservationStatus
from lockrent.core.entities.statistics import reservation_created, reservation_status_change
from lockrent.core.exceptions import (
    CapacityExceeded,
    InvalidState,
    NoInventory,
    NotFoundError,
    PersistenceConflict,
    ValidationError,
)
from lockrent.core.repositories.location_repository import LocationRepository
from lockrent.core.repositories.reservation_repository import ReservationRepository
from lockrent.core.use_cases.notifier import EventNotifier
from lockrent.core.use_cases.rental_lifecycle import RentalLifecycleManager
from lockrent.core.use_cases.statistics_aggregator import StatisticsAggregator

logger = logging.getLogger(__name__)


class ReservationManager:
    """
    Capacity holds for future dates.

    A reservation counts against the provisioned capacity of its (location,
    size) on each of its dates; it is bound to a concrete locker only when it is
    converted into a rental on arrival. Capacity and units are different
    resources, so conversion can still fail with NoInventory.
    """

    def __init__(
        self,
        *,
        reservation_repo: ReservationRepository,
        location_repo: LocationRepository,
        lifecycle: RentalLifecycleManager,
        statistics: StatisticsAggregator,
        notifier: EventNotifier,
        clock: Clock = utc_now,
    ) -> None:
        self._reservation_repo = reservation_repo
        self._location_repo = location_repo
        self._lifecycle = lifecycle
        self._statistics = statistics
        self._notifier = notifier
        self._clock = clock

    def create_reservation(
        self,
        *,
        user_id: str,
        location_id: str,
        size_class: SizeClass,
        dates: Iterable[date],
    ) -> Reservation:
        days = frozenset(dates)
        if not days:
            raise ValidationError("A reservation needs at least one date")

        now = self._clock()
        past = sorted(d for d in days if d < now.date())
        if past:
            raise ValidationError(f"Cannot reserve dates in the past: {past[0].isoformat()}")

        location = self._location_repo.get(location_id)
        if location is None:
            raise NotFoundError("Location not found")

        capacity = location.capacity.get(size_class, 0)
        for day in sorted(days):
            held = self._reservation_repo.count_holding(location_id, size_class, day)
            if held >= capacity:
                raise CapacityExceeded(
                    f"No {size_class.value} capacity left at {location_id!r} on {day.isoformat()} "
                    f"({held}/{capacity} reserved)"
                )

        reservation = Reservation(
            reservation_id=new_id(),
            user_id=user_id,
            location_id=location_id,
            size_class=size_class,
            status=ReservationStatus.PENDING,
            created_at=now,
            dates=days,
        )
        self._reservation_repo.add(reservation)
        self._statistics.record(reservation_created())
        logger.info(f"Reservation {reservation.reservation_id} created for {len(days)} date(s)")
        return reservation

    def confirm_reservation(self, reservation_id: str) -> Reservation:
        reservation = self._load(reservation_id)
        try:
            reservation.confirm(now=self._clock())
        except ValueError as e:
            raise self._rejected(e) from e

        self._transition(reservation, expected=ReservationStatus.PENDING)
        self._statistics.record(reservation_status_change(ReservationStatus.PENDING, ReservationStatus.CONFIRMED))
        self._notifier.emit(
            EventType.ReservationConfirmed,
            reservation_id=reservation_id,
            user_id=reservation.user_id,
            location_id=reservation.location_id,
            size_class=reservation.size_class.value,
            dates=sorted(d.isoformat() for d in reservation.dates),
        )
        return reservation

    def convert_to_rental(
        self,
        reservation_id: str,
        *,
        plan_tier: PlanTier = PlanTier.STANDARD,
        duration_class: DurationClass = DurationClass.DAILY,
    ) -> Rental:
        """
        Bind a confirmed reservation to a locker on one of its dates.

        The reservation is marked Converted before the claim so that two
        arrivals for the same reservation cannot both get a locker. If the claim
        fails the reservation goes back to Confirmed. A reservation left
        Converted by a rental that never started is reopened first.
        """
        reservation = self._load(reservation_id)
        if (
            reservation.status is ReservationStatus.CONVERTED
            and reservation.rental_id is not None
            and not self._lifecycle.rental_started(reservation.rental_id)
        ):
            logger.warning(
                f"Reservation {reservation_id} was left Converted by unstarted rental {reservation.rental_id}, reopening"
            )
            self._revert_conversion(reservation)

        today = self._clock().date()
        if reservation.status is ReservationStatus.CONFIRMED and not reservation.covers(today):
            raise InvalidState(f"Reservation {reservation_id!r} is not valid on {today.isoformat()}")

        rental_id = new_id()
        try:
            reservation.mark_converted(rental_id)
        except ValueError as e:
            raise self._rejected(e) from e
        self._transition(reservation, expected=ReservationStatus.CONFIRMED)

        try:
            rental = self._lifecycle.request_rental(
                user_id=reservation.user_id,
                location_id=reservation.location_id,
                size_class=reservation.size_class,
                plan_tier=plan_tier,
                duration_class=duration_class,
                rental_id=rental_id,
                rental_type=RentalType.RESERVATION,
                reservation_id=reservation_id,
            )
        except NoInventory as e:
            logger.error(f"Reservation {reservation_id} holds capacity but no unit is free: {e}")
            self._reopen_after_failure(reservation)
            raise
        except Exception:
            self._reopen_after_failure(reservation)
            raise

        self._statistics.record(reservation_status_change(ReservationStatus.CONFIRMED, ReservationStatus.CONVERTED))
        logger.info(f"Reservation {reservation_id} converted into rental {rental.rental_id}")
        return rental

    def cancel_reservation(self, reservation_id: str) -> Reservation:
        reservation = self._load(reservation_id)
        previous = reservation.status
        try:
            reservation.cancel()
        except ValueError as e:
            raise self._rejected(e) from e

        self._transition(reservation, expected=previous)
        self._statistics.record(reservation_status_change(previous, ReservationStatus.CANCELLED))
        logger.info(f"Reservation {reservation_id} cancelled")
        return reservation

    def get_reservation(self, reservation_id: str) -> Reservation:
        return self._load(reservation_id)

    def list_user_reservations(self, user_id: str) -> list[Reservation]:
        return self._reservation_repo.list_by_user(user_id)

    # -----------------------------
    # Internal helpers
    # -----------------------------
    def _load(self, reservation_id: str) -> Reservation:
        reservation = self._reservation_repo.get(reservation_id)
        if reservation is None:
            raise NotFoundError("Reservation not found")
        return reservation

    def _transition(self, reservation: Reservation, *, expected: ReservationStatus) -> None:
        try:
            self._reservation_repo.transition(reservation, expected=expected)
        except PersistenceConflict as e:
            logger.warning(f"Reservation {reservation.reservation_id} moved concurrently")
            raise InvalidState(
                f"Reservation {reservation.reservation_id!r} was modified concurrently"
            ) from e

    def _revert_conversion(self, reservation: Reservation) -> None:
        reservation.status = ReservationStatus.CONFIRMED
        reservation.rental_id = None
        self._transition(reservation, expected=ReservationStatus.CONVERTED)

    def _reopen_after_failure(self, reservation: Reservation) -> None:
        stale_rental_id = reservation.rental_id
        try:
            self._revert_conversion(reservation)
        except Exception:
            logger.error(
                f"Reservation {reservation.reservation_id} still Converted to unstarted rental {stale_rental_id}",
                exc_info=True,
            )

    @staticmethod
    def _rejected(error: ValueError) -> InvalidState:
        logger.warning(f"Rejected transition: {error}")
        return InvalidState(str(error))
