from __future__ import annotations

import logging
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Callable, TypeVar

from sqlalchemy.orm import Session

from lockrent.core.clock import Clock, utc_now
from lockrent.core.entities.locker import Locker, SizeClass
from lockrent.core.entities.location import Location
from lockrent.core.entities.pricing import RateTable
from lockrent.core.entities.rental import Rental
from lockrent.core.entities.reservation import Reservation
from lockrent.core.exceptions import NotFoundError
from lockrent.core.use_cases.get_location_summary import GetLocationSummaryUseCase
from lockrent.core.use_cases.get_locker_status import GetLockerStatusUseCase
from lockrent.core.use_cases.inventory_store import InventoryStore
from lockrent.core.use_cases.notifier import EventNotifier
from lockrent.core.use_cases.provision_location import ProvisionLocationUseCase
from lockrent.core.use_cases.rental_lifecycle import RentalLifecycleManager
from lockrent.core.use_cases.reservation_manager import ReservationManager
from lockrent.core.use_cases.statistics_aggregator import StatisticsAggregator
from lockrent.infrastructure.provisioning import load_provisioning
from lockrent.infrastructure.repositories.event_repository_jsonl_impl import JsonlEventRepositoryImpl
from lockrent.infrastructure.repositories.location_repository_impl import LocationRepositoryImpl
from lockrent.infrastructure.repositories.locker_repository_impl import LockerRepositoryImpl
from lockrent.infrastructure.repositories.rental_repository_impl import RentalRepositoryImpl
from lockrent.infrastructure.repositories.reservation_repository_impl import ReservationRepositoryImpl
from lockrent.infrastructure.repositories.statistics_repository_impl import StatisticsRepositoryImpl
from lockrent.schemas.models import (
    Availability,
    LocationCreate,
    LocationSummary,
    LockerStatusOut,
    RecoveryReport,
    RentalCreate,
    RentalOut,
    ReservationConvert,
    ReservationCreate,
    ReservationOut,
    Statistics,
    UserRentals,
)
from lockrent.services.retry import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _default_event_log_path() -> Path:
    from lockrent.infrastructure.config import settings
    return settings.event_log_path


@lru_cache(maxsize=1)
def _rates() -> RateTable:
    from lockrent.infrastructure.config import settings
    return load_provisioning(settings.provisioning_path).rates


def _recovery_grace() -> timedelta:
    from lockrent.infrastructure.config import settings
    return timedelta(seconds=settings.recovery_grace_seconds)


def _retrying(operation: Callable[[], T]) -> T:
    return RetryPolicy.from_settings().run(operation)


class _UseCases:
    """Per-request object graph: one session, one clock, shared by every collaborator."""

    def __init__(self, db: Session, clock: Clock) -> None:
        self.location_repo = LocationRepositoryImpl(db, clock=clock)
        self.locker_repo = LockerRepositoryImpl(db, clock=clock)
        self.rental_repo = RentalRepositoryImpl(db)
        self.reservation_repo = ReservationRepositoryImpl(db)

        self.notifier = EventNotifier(
            event_repo=JsonlEventRepositoryImpl(file_path=_default_event_log_path()),
            clock=clock,
        )
        self.statistics = StatisticsAggregator(
            statistics_repo=StatisticsRepositoryImpl(db),
            locker_repo=self.locker_repo,
            rental_repo=self.rental_repo,
            reservation_repo=self.reservation_repo,
            location_repo=self.location_repo,
            clock=clock,
        )
        self.inventory = InventoryStore(
            locker_repo=self.locker_repo,
            location_repo=self.location_repo,
            statistics=self.statistics,
            notifier=self.notifier,
        )
        self.lifecycle = RentalLifecycleManager(
            rental_repo=self.rental_repo,
            location_repo=self.location_repo,
            inventory=self.inventory,
            statistics=self.statistics,
            notifier=self.notifier,
            clock=clock,
            rates=_rates(),
        )
        self.reservations = ReservationManager(
            reservation_repo=self.reservation_repo,
            location_repo=self.location_repo,
            lifecycle=self.lifecycle,
            statistics=self.statistics,
            notifier=self.notifier,
            clock=clock,
        )
        self.provisioning = ProvisionLocationUseCase(
            location_repo=self.location_repo,
            statistics=self.statistics,
        )


# -----------------------------
# Entity -> schema
# -----------------------------
def _location_out(location: Location) -> LocationSummary:
    return LocationSummary(
        location_id=location.location_id,
        name=location.name,
        address=location.address,
        latitude=location.latitude,
        longitude=location.longitude,
        category=location.category,
        available={size: location.available.get(size, 0) for size in SizeClass},
        capacity={size: location.capacity.get(size, 0) for size in SizeClass},
    )


def _locker_out(locker: Locker) -> LockerStatusOut:
    return LockerStatusOut(
        locker_id=locker.locker_id,
        location_id=locker.location_id,
        number=locker.number,
        size_class=locker.size_class,
        dimensions=locker.size_class.dimensions,
        status=locker.status,
        current_rental_id=locker.current_rental_id,
    )


def _rental_out(rental: Rental) -> RentalOut:
    return RentalOut(
        rental_id=rental.rental_id,
        user_id=rental.user_id,
        location_id=rental.location_id,
        locker_id=rental.locker_id,
        size_class=rental.size_class,
        plan_tier=rental.plan_tier,
        duration_class=rental.duration_class,
        rental_type=rental.rental_type,
        reservation_id=rental.reservation_id,
        status=rental.status,
        created_at=rental.created_at,
        start_time=rental.start_time,
        end_time=rental.end_time,
        total_price=rental.total_price,
    )


def _reservation_out(reservation: Reservation) -> ReservationOut:
    return ReservationOut(
        reservation_id=reservation.reservation_id,
        user_id=reservation.user_id,
        location_id=reservation.location_id,
        size_class=reservation.size_class,
        dates=sorted(reservation.dates),
        status=reservation.status,
        created_at=reservation.created_at,
        confirmed_at=reservation.confirmed_at,
        rental_id=reservation.rental_id,
    )


# -----------------------------
# Locations and lockers
# -----------------------------
def create_location_service(body: LocationCreate, db: Session, clock: Clock = utc_now) -> LocationSummary:
    def _run() -> LocationSummary:
        location = _UseCases(db, clock).provisioning.execute(
            location_id=body.location_id,
            name=body.name,
            address=body.address,
            latitude=body.latitude,
            longitude=body.longitude,
            lockers=body.lockers,
            category=body.category,
        )
        return _location_out(location)

    return _retrying(_run)


def list_locations_service(db: Session) -> list[LocationSummary]:
    use_case = GetLocationSummaryUseCase(location_repo=LocationRepositoryImpl(db))
    return _retrying(lambda: [_location_out(loc) for loc in use_case.list_all()])


def get_location_service(location_id: str, db: Session) -> LocationSummary:
    use_case = GetLocationSummaryUseCase(location_repo=LocationRepositoryImpl(db))
    return _retrying(lambda: _location_out(use_case.execute(location_id=location_id)))


def get_availability_service(location_id: str, size_class: SizeClass, db: Session) -> Availability:
    """Counts Available lockers directly, unlike the materialized figure in the location summary."""
    def _run() -> Availability:
        use_cases = _UseCases(db, utc_now)
        if use_cases.location_repo.get(location_id) is None:
            raise NotFoundError("Location not found")
        available = use_cases.inventory.get_available_count(location_id, size_class)
        return Availability(location_id=location_id, size_class=size_class, available=available)

    return _retrying(_run)


def get_locker_status_service(locker_id: str, db: Session) -> LockerStatusOut:
    use_case = GetLockerStatusUseCase(locker_repo=LockerRepositoryImpl(db))
    dto = _retrying(lambda: use_case.execute(locker_id=locker_id))

    return LockerStatusOut(
        locker_id=dto.locker_id,
        location_id=dto.location_id,
        number=dto.number,
        size_class=dto.size_class,
        dimensions=dto.dimensions,
        status=dto.status,
        current_rental_id=dto.current_rental_id,
    )


def start_maintenance_service(locker_id: str, db: Session, clock: Clock = utc_now) -> LockerStatusOut:
    return _retrying(lambda: _locker_out(_UseCases(db, clock).inventory.start_maintenance(locker_id)))


def end_maintenance_service(locker_id: str, db: Session, clock: Clock = utc_now) -> LockerStatusOut:
    return _retrying(lambda: _locker_out(_UseCases(db, clock).inventory.end_maintenance(locker_id)))


# -----------------------------
# Rentals
# -----------------------------
def request_rental_service(body: RentalCreate, db: Session, clock: Clock = utc_now) -> RentalOut:
    def _run() -> RentalOut:
        rental = _UseCases(db, clock).lifecycle.request_rental(
            user_id=body.user_id,
            location_id=body.location_id,
            size_class=body.size_class,
            plan_tier=body.plan_tier,
            duration_class=body.duration_class,
            hold=body.hold,
        )
        return _rental_out(rental)

    return _retrying(_run)


def get_rental_service(rental_id: str, db: Session) -> RentalOut:
    return _retrying(lambda: _rental_out(_UseCases(db, utc_now).lifecycle.get_rental(rental_id)))


def activate_rental_service(rental_id: str, db: Session, clock: Clock = utc_now) -> RentalOut:
    return _retrying(lambda: _rental_out(_UseCases(db, clock).lifecycle.activate_rental(rental_id)))


def end_rental_service(rental_id: str, db: Session, clock: Clock = utc_now) -> RentalOut:
    return _retrying(lambda: _rental_out(_UseCases(db, clock).lifecycle.end_rental(rental_id)))


def cancel_rental_service(rental_id: str, db: Session, clock: Clock = utc_now) -> RentalOut:
    return _retrying(lambda: _rental_out(_UseCases(db, clock).lifecycle.cancel_rental(rental_id)))


def list_user_rentals_service(user_id: str, db: Session) -> UserRentals:
    def _run() -> UserRentals:
        rentals = _UseCases(db, utc_now).lifecycle.list_user_rentals(user_id)
        return UserRentals(
            current=[_rental_out(r) for r in rentals.current],
            past=[_rental_out(r) for r in rentals.past],
        )

    return _retrying(_run)


# -----------------------------
# Reservations
# -----------------------------
def create_reservation_service(body: ReservationCreate, db: Session, clock: Clock = utc_now) -> ReservationOut:
    def _run() -> ReservationOut:
        reservation = _UseCases(db, clock).reservations.create_reservation(
            user_id=body.user_id,
            location_id=body.location_id,
            size_class=body.size_class,
            dates=body.dates,
        )
        return _reservation_out(reservation)

    return _retrying(_run)


def get_reservation_service(reservation_id: str, db: Session) -> ReservationOut:
    return _retrying(
        lambda: _reservation_out(_UseCases(db, utc_now).reservations.get_reservation(reservation_id))
    )


def confirm_reservation_service(reservation_id: str, db: Session, clock: Clock = utc_now) -> ReservationOut:
    return _retrying(
        lambda: _reservation_out(_UseCases(db, clock).reservations.confirm_reservation(reservation_id))
    )


def cancel_reservation_service(reservation_id: str, db: Session, clock: Clock = utc_now) -> ReservationOut:
    return _retrying(
        lambda: _reservation_out(_UseCases(db, clock).reservations.cancel_reservation(reservation_id))
    )


def convert_reservation_service(
    reservation_id: str,
    body: ReservationConvert,
    db: Session,
    clock: Clock = utc_now,
) -> RentalOut:
    def _run() -> RentalOut:
        rental = _UseCases(db, clock).reservations.convert_to_rental(
            reservation_id,
            plan_tier=body.plan_tier,
            duration_class=body.duration_class,
        )
        return _rental_out(rental)

    return _retrying(_run)


def list_user_reservations_service(user_id: str, db: Session) -> list[ReservationOut]:
    return _retrying(
        lambda: [_reservation_out(r) for r in _UseCases(db, utc_now).reservations.list_user_reservations(user_id)]
    )


# -----------------------------
# Statistics and maintenance
# -----------------------------
def _statistics_out(use_cases: _UseCases, rebuild: bool) -> Statistics:
    snapshot = use_cases.statistics.rebuild() if rebuild else use_cases.statistics.snapshot()
    return Statistics(
        counters=snapshot.counters,
        total_revenue=snapshot.total_revenue,
        state_hash=snapshot.state_hash(),
        updated_at=snapshot.updated_at,
    )


def get_statistics_service(db: Session) -> Statistics:
    return _retrying(lambda: _statistics_out(_UseCases(db, utc_now), rebuild=False))


def rebuild_statistics_service(db: Session, clock: Clock = utc_now) -> Statistics:
    return _retrying(lambda: _statistics_out(_UseCases(db, clock), rebuild=True))


def recover_orphaned_lockers_service(db: Session, clock: Clock = utc_now) -> RecoveryReport:
    def _run() -> RecoveryReport:
        result = _UseCases(db, clock).lifecycle.recover_orphaned_lockers(grace=_recovery_grace())
        return RecoveryReport(released_locker_ids=result.released_locker_ids)

    return _retrying(_run)


def seed_inventory_service(db: Session, provisioning_path: Path, clock: Clock = utc_now) -> int:
    """
    Provision the locations listed in the YAML file when the store holds none.

    Returns the number of locations created.
    """
    use_cases = _UseCases(db, clock)
    if use_cases.location_repo.list_all():
        return 0

    plan = load_provisioning(provisioning_path)
    for seed in plan.locations:
        use_cases.provisioning.execute(
            location_id=seed.location_id,
            name=seed.name,
            address=seed.address,
            latitude=seed.latitude,
            longitude=seed.longitude,
            lockers=seed.lockers,
            category=seed.category,
        )
    logger.info(f"Seeded {len(plan.locations)} location(s) from {provisioning_path}")
    return len(plan.locations)
