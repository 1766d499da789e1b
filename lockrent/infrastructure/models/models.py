from __future__ import annotations

import json
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lockrent.core.entities.locker import LockerStatus, SizeClass
from lockrent.core.entities.location import LocationCategory
from lockrent.core.entities.rental import DurationClass, PlanTier, RentalStatus, RentalType
from lockrent.core.entities.reservation import ReservationStatus
from lockrent.infrastructure.database import Base


class EventStore:
    """Append-only JSON lines file."""

    def __init__(self, path: Path):
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.touch(exist_ok=True)

    def append(self, event: Dict[str, Any]) -> None:
        with self._path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(event) + "\n")

    def load_all(self) -> Iterable[Dict[str, Any]]:
        with self._path.open(encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    yield json.loads(line)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything is stored in UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class LocationModel(Base):
    __tablename__ = "locations"

    location_id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    address: Mapped[str] = mapped_column(String, nullable=False, default="")
    latitude: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    longitude: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    category: Mapped[LocationCategory | None] = mapped_column(Enum(LocationCategory), nullable=True)

    inventory = relationship(
        "LocationInventoryModel",
        back_populates="location",
        cascade="all, delete-orphan",
    )


class LocationInventoryModel(Base):
    """Per-size provisioned capacity and the materialized available count."""
    __tablename__ = "location_inventory"

    location_id: Mapped[str] = mapped_column(ForeignKey("locations.location_id"), primary_key=True)
    size_class: Mapped[SizeClass] = mapped_column(Enum(SizeClass), primary_key=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    available: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    location = relationship("LocationModel", back_populates="inventory")


class LockerModel(Base):
    __tablename__ = "lockers"

    locker_id: Mapped[str] = mapped_column(String, primary_key=True)
    location_id: Mapped[str] = mapped_column(ForeignKey("locations.location_id"), nullable=False, index=True)
    size_class: Mapped[SizeClass] = mapped_column(Enum(SizeClass), nullable=False, index=True)
    number: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[LockerStatus] = mapped_column(Enum(LockerStatus), nullable=False, index=True)
    # Written in the same conditional update as `status`; no FK because the
    # claim happens before the rental row exists.
    current_rental_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class RentalModel(Base):
    __tablename__ = "rentals"

    rental_id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    location_id: Mapped[str] = mapped_column(ForeignKey("locations.location_id"), nullable=False)
    locker_id: Mapped[str | None] = mapped_column(ForeignKey("lockers.locker_id"), nullable=True)
    size_class: Mapped[SizeClass] = mapped_column(Enum(SizeClass), nullable=False)
    plan_tier: Mapped[PlanTier] = mapped_column(Enum(PlanTier), nullable=False)
    duration_class: Mapped[DurationClass] = mapped_column(Enum(DurationClass), nullable=False)
    rental_type: Mapped[RentalType] = mapped_column(Enum(RentalType), nullable=False)
    reservation_id: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[RentalStatus] = mapped_column(Enum(RentalStatus), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_price_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)


class ReservationModel(Base):
    __tablename__ = "reservations"

    reservation_id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    location_id: Mapped[str] = mapped_column(ForeignKey("locations.location_id"), nullable=False, index=True)
    size_class: Mapped[SizeClass] = mapped_column(Enum(SizeClass), nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(Enum(ReservationStatus), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rental_id: Mapped[str | None] = mapped_column(String, nullable=True)

    dates = relationship(
        "ReservationDateModel",
        back_populates="reservation",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class ReservationDateModel(Base):
    __tablename__ = "reservation_dates"

    reservation_id: Mapped[str] = mapped_column(ForeignKey("reservations.reservation_id"), primary_key=True)
    day: Mapped[date] = mapped_column(Date, primary_key=True, index=True)

    reservation = relationship("ReservationModel", back_populates="dates")


class StatisticsCounterModel(Base):
    __tablename__ = "statistics_counters"

    name: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
