"""
System statistics: derived integer counters.

Counters are keyed by dotted names, e.g. ``lockers.status.Available`` or
``revenue.plan.Premium``. Revenue counters hold cents so every counter is an
exact integer and an incrementally maintained snapshot can be compared with a
rebuilt one by hash.
"""
from __future__ import annotations

import hashlib
import json
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from lockrent.core.entities.locker import Locker, LockerStatus, SizeClass
from lockrent.core.entities.pricing import from_cents, to_cents
from lockrent.core.entities.rental import DurationClass, PlanTier, Rental, RentalStatus, RentalType
from lockrent.core.entities.reservation import Reservation, ReservationStatus


def empty_counters() -> dict[str, int]:
    counters = {"lockers.total": 0, "rentals.total": 0, "reservations.total": 0, "revenue.total": 0}
    for status in LockerStatus:
        counters[f"lockers.status.{status.value}"] = 0
    for size in SizeClass:
        counters[f"lockers.size.{size.value}"] = 0
        counters[f"rentals.size.{size.value}"] = 0
        counters[f"revenue.size.{size.value}"] = 0
    for status in RentalStatus:
        counters[f"rentals.status.{status.value}"] = 0
    for tier in PlanTier:
        counters[f"rentals.plan.{tier.value}"] = 0
        counters[f"revenue.plan.{tier.value}"] = 0
    for duration in DurationClass:
        counters[f"rentals.duration.{duration.value}"] = 0
    for rental_type in RentalType:
        counters[f"rentals.type.{rental_type.value}"] = 0
    for status in ReservationStatus:
        counters[f"reservations.status.{status.value}"] = 0
    return counters


@dataclass(frozen=True, slots=True)
class StatisticsDelta:
    changes: dict[str, int] = field(default_factory=dict)

    def __add__(self, other: StatisticsDelta) -> StatisticsDelta:
        merged = Counter(self.changes)
        merged.update(other.changes)
        return StatisticsDelta(changes=dict(merged))

    def __bool__(self) -> bool:
        return any(self.changes.values())


def lockers_provisioned(size_class: SizeClass, count: int) -> StatisticsDelta:
    return StatisticsDelta(
        changes={
            "lockers.total": count,
            f"lockers.status.{LockerStatus.AVAILABLE.value}": count,
            f"lockers.size.{size_class.value}": count,
        }
    )


def locker_status_change(old: LockerStatus, new: LockerStatus) -> StatisticsDelta:
    if old is new:
        return StatisticsDelta()
    return StatisticsDelta(changes={f"lockers.status.{old.value}": -1, f"lockers.status.{new.value}": 1})


def rental_created(rental: Rental) -> StatisticsDelta:
    return StatisticsDelta(
        changes={
            "rentals.total": 1,
            f"rentals.status.{rental.status.value}": 1,
            f"rentals.size.{rental.size_class.value}": 1,
            f"rentals.plan.{rental.plan_tier.value}": 1,
            f"rentals.duration.{rental.duration_class.value}": 1,
            f"rentals.type.{rental.rental_type.value}": 1,
        }
    )


def rental_status_change(old: RentalStatus, new: RentalStatus) -> StatisticsDelta:
    if old is new:
        return StatisticsDelta()
    return StatisticsDelta(changes={f"rentals.status.{old.value}": -1, f"rentals.status.{new.value}": 1})


def rental_completed(rental: Rental) -> StatisticsDelta:
    cents = to_cents(rental.total_price or Decimal(0))
    revenue = StatisticsDelta(
        changes={
            "revenue.total": cents,
            f"revenue.plan.{rental.plan_tier.value}": cents,
            f"revenue.size.{rental.size_class.value}": cents,
        }
    )
    return rental_status_change(RentalStatus.ACTIVE, RentalStatus.COMPLETED) + revenue


def reservation_created() -> StatisticsDelta:
    return StatisticsDelta(
        changes={"reservations.total": 1, f"reservations.status.{ReservationStatus.PENDING.value}": 1}
    )


def reservation_status_change(old: ReservationStatus, new: ReservationStatus) -> StatisticsDelta:
    if old is new:
        return StatisticsDelta()
    return StatisticsDelta(
        changes={f"reservations.status.{old.value}": -1, f"reservations.status.{new.value}": 1}
    )


def compute_counters(
    lockers: Iterable[Locker],
    rentals: Iterable[Rental],
    reservations: Iterable[Reservation],
) -> dict[str, int]:
    """From-scratch count over the source-of-truth records."""
    counters = empty_counters()

    for locker in lockers:
        counters["lockers.total"] += 1
        counters[f"lockers.status.{locker.status.value}"] += 1
        counters[f"lockers.size.{locker.size_class.value}"] += 1

    for rental in rentals:
        counters["rentals.total"] += 1
        counters[f"rentals.status.{rental.status.value}"] += 1
        counters[f"rentals.size.{rental.size_class.value}"] += 1
        counters[f"rentals.plan.{rental.plan_tier.value}"] += 1
        counters[f"rentals.duration.{rental.duration_class.value}"] += 1
        counters[f"rentals.type.{rental.rental_type.value}"] += 1
        if rental.status is RentalStatus.COMPLETED and rental.total_price is not None:
            cents = to_cents(rental.total_price)
            counters["revenue.total"] += cents
            counters[f"revenue.plan.{rental.plan_tier.value}"] += cents
            counters[f"revenue.size.{rental.size_class.value}"] += cents

    for reservation in reservations:
        counters["reservations.total"] += 1
        counters[f"reservations.status.{reservation.status.value}"] += 1

    return counters


@dataclass(slots=True)
class SystemStatistics:
    counters: dict[str, int] = field(default_factory=empty_counters)
    updated_at: datetime | None = None

    def get(self, key: str) -> int:
        return self.counters.get(key, 0)

    @property
    def total_revenue(self) -> Decimal:
        return from_cents(self.get("revenue.total"))

    def state_hash(self) -> str:
        """
        Deterministic hash of the counters (not of `updated_at`).
        """
        raw = json.dumps(self.counters, sort_keys=True, separators=(",", ":")).encode("utf-8")
        return hashlib.sha256(raw).hexdigest()
