from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from sqlalchemy.orm import Session

from lockrent.core.entities.locker import LockerStatus, SizeClass
from lockrent.core.entities.location import Location
from lockrent.core.entities.pricing import DEFAULT_RATES, RateTable
from lockrent.core.entities.rental import RentalStatus
from lockrent.core.repositories.statistics_repository import StatisticsRepository
from lockrent.core.use_cases.inventory_store import InventoryStore
from lockrent.core.use_cases.notifier import EventNotifier
from lockrent.core.use_cases.provision_location import ProvisionLocationUseCase
from lockrent.core.use_cases.rental_lifecycle import RentalLifecycleManager
from lockrent.core.use_cases.reservation_manager import ReservationManager
from lockrent.core.use_cases.statistics_aggregator import StatisticsAggregator
from lockrent.infrastructure.repositories.event_repository_jsonl_impl import JsonlEventRepositoryImpl
from lockrent.infrastructure.repositories.location_repository_impl import LocationRepositoryImpl
from lockrent.infrastructure.repositories.locker_repository_impl import LockerRepositoryImpl
from lockrent.infrastructure.repositories.rental_repository_impl import RentalRepositoryImpl
from lockrent.infrastructure.repositories.reservation_repository_impl import ReservationRepositoryImpl
from lockrent.infrastructure.repositories.statistics_repository_impl import StatisticsRepositoryImpl


class FakeClock:
    def __init__(self, start: datetime = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@dataclass
class System:
    location_repo: LocationRepositoryImpl
    locker_repo: LockerRepositoryImpl
    rental_repo: RentalRepositoryImpl
    reservation_repo: ReservationRepositoryImpl
    statistics_repo: StatisticsRepository
    statistics: StatisticsAggregator
    inventory: InventoryStore
    lifecycle: RentalLifecycleManager
    reservations: ReservationManager
    provisioning: ProvisionLocationUseCase


def build_system(
    db: Session,
    *,
    clock: FakeClock,
    event_log_path: Path,
    statistics_repo: StatisticsRepository | None = None,
    rates: RateTable = DEFAULT_RATES,
) -> System:
    location_repo = LocationRepositoryImpl(db, clock=clock)
    locker_repo = LockerRepositoryImpl(db, clock=clock)
    rental_repo = RentalRepositoryImpl(db)
    reservation_repo = ReservationRepositoryImpl(db)
    statistics_repo = statistics_repo or StatisticsRepositoryImpl(db)

    notifier = EventNotifier(event_repo=JsonlEventRepositoryImpl(file_path=event_log_path), clock=clock)
    statistics = StatisticsAggregator(
        statistics_repo=statistics_repo,
        locker_repo=locker_repo,
        rental_repo=rental_repo,
        reservation_repo=reservation_repo,
        location_repo=location_repo,
        clock=clock,
    )
    inventory = InventoryStore(
        locker_repo=locker_repo,
        location_repo=location_repo,
        statistics=statistics,
        notifier=notifier,
    )
    lifecycle = RentalLifecycleManager(
        rental_repo=rental_repo,
        location_repo=location_repo,
        inventory=inventory,
        statistics=statistics,
        notifier=notifier,
        clock=clock,
        rates=rates,
    )
    reservations = ReservationManager(
        reservation_repo=reservation_repo,
        location_repo=location_repo,
        lifecycle=lifecycle,
        statistics=statistics,
        notifier=notifier,
        clock=clock,
    )
    provisioning = ProvisionLocationUseCase(
        location_repo=location_repo,
        statistics=statistics,
    )
    return System(
        location_repo=location_repo,
        locker_repo=locker_repo,
        rental_repo=rental_repo,
        reservation_repo=reservation_repo,
        statistics_repo=statistics_repo,
        statistics=statistics,
        inventory=inventory,
        lifecycle=lifecycle,
        reservations=reservations,
        provisioning=provisioning,
    )


def provision(system: System, location_id: str = "L1", *, small: int = 0, medium: int = 0, large: int = 0) -> Location:
    return system.provisioning.execute(
        location_id=location_id,
        name=f"Shop {location_id}",
        address="1 Test St",
        latitude=37.77,
        longitude=-122.41,
        lockers={SizeClass.SMALL: small, SizeClass.MEDIUM: medium, SizeClass.LARGE: large},
    )


def assert_bidirectional_consistency(system: System) -> None:
    """Every Occupied locker is owned by an Active rental on it, and every Active rental holds its locker."""
    for locker in system.locker_repo.list_all():
        assert locker.is_consistent, locker
        if locker.status is LockerStatus.OCCUPIED:
            owner = system.rental_repo.get(locker.current_rental_id)
            assert owner is not None
            assert owner.status is RentalStatus.ACTIVE
            assert owner.locker_id == locker.locker_id

    for rental in system.rental_repo.list_all():
        if rental.status is RentalStatus.ACTIVE:
            locker = system.locker_repo.get(rental.locker_id)
            assert locker is not None
            assert locker.status is LockerStatus.OCCUPIED
            assert locker.current_rental_id == rental.rental_id
