from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

from lockrent.core.entities.locker import SizeClass


class ReservationStatus(str, Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"
    CONVERTED = "Converted"

    @property
    def holds_capacity(self) -> bool:
        return self in (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)


@dataclass(slots=True)
class Reservation:
    """A capacity hold for one or more dates. Not bound to a locker until converted."""
    reservation_id: str
    user_id: str
    location_id: str
    size_class: SizeClass
    status: ReservationStatus
    created_at: datetime
    dates: frozenset[date] = field(default_factory=frozenset)
    confirmed_at: datetime | None = None
    rental_id: str | None = None

    def covers(self, day: date) -> bool:
        return day in self.dates

    def confirm(self, *, now: datetime) -> None:
        if self.status is not ReservationStatus.PENDING:
            raise ValueError(
                f"Cannot confirm reservation {self.reservation_id!r} in status {self.status.value!r}"
            )
        self.status = ReservationStatus.CONFIRMED
        self.confirmed_at = now

    def mark_converted(self, rental_id: str) -> None:
        if self.status is not ReservationStatus.CONFIRMED:
            raise ValueError(
                f"Cannot convert reservation {self.reservation_id!r} in status {self.status.value!r}"
            )
        self.status = ReservationStatus.CONVERTED
        self.rental_id = rental_id

    def cancel(self) -> None:
        if not self.status.holds_capacity:
            raise ValueError(
                f"Cannot cancel reservation {self.reservation_id!r} in status {self.status.value!r}"
            )
        self.status = ReservationStatus.CANCELLED
