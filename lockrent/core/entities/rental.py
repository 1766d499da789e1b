from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from lockrent.core.entities.locker import SizeClass


class PlanTier(str, Enum):
    STANDARD = "Standard"
    PREMIUM = "Premium"


class DurationClass(str, Enum):
    HOURLY = "Hourly"
    DAILY = "Daily"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"

    @property
    def is_fixed(self) -> bool:
        return self is not DurationClass.HOURLY


class RentalType(str, Enum):
    INSTANT = "instant"
    RESERVATION = "reservation"


class RentalStatus(str, Enum):
    PENDING = "Pending"
    ACTIVE = "Active"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RentalStatus.COMPLETED, RentalStatus.CANCELLED)


_TRANSITIONS: dict[RentalStatus, frozenset[RentalStatus]] = {
    RentalStatus.PENDING: frozenset({RentalStatus.ACTIVE, RentalStatus.CANCELLED}),
    RentalStatus.ACTIVE: frozenset({RentalStatus.COMPLETED}),
    RentalStatus.COMPLETED: frozenset(),
    RentalStatus.CANCELLED: frozenset(),
}


@dataclass(slots=True)
class Rental:
    rental_id: str
    user_id: str
    location_id: str
    size_class: SizeClass
    plan_tier: PlanTier
    duration_class: DurationClass
    status: RentalStatus
    created_at: datetime
    rental_type: RentalType = RentalType.INSTANT
    reservation_id: str | None = None
    locker_id: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    total_price: Decimal | None = None

    def ensure_can_transition(self, target: RentalStatus) -> None:
        if target not in _TRANSITIONS[self.status]:
            if self.status is RentalStatus.COMPLETED:
                raise ValueError(f"Rental {self.rental_id!r} is already completed")
            raise ValueError(
                f"Cannot move rental {self.rental_id!r} from {self.status.value!r} to {target.value!r}"
            )

    def activate(self, *, locker_id: str, now: datetime) -> None:
        self.ensure_can_transition(RentalStatus.ACTIVE)
        self.locker_id = locker_id
        self.start_time = now
        self.status = RentalStatus.ACTIVE

    def complete(self, *, now: datetime, total_price: Decimal) -> None:
        self.ensure_can_transition(RentalStatus.COMPLETED)
        self.end_time = now
        self.total_price = total_price
        self.status = RentalStatus.COMPLETED

    def cancel(self) -> None:
        self.ensure_can_transition(RentalStatus.CANCELLED)
        self.status = RentalStatus.CANCELLED
