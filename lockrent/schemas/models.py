from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List

from pydantic import BaseModel, Field

from lockrent.core.entities.locker import LockerStatus, SizeClass
from lockrent.core.entities.location import LocationCategory
from lockrent.core.entities.rental import DurationClass, PlanTier, RentalStatus, RentalType
from lockrent.core.entities.reservation import ReservationStatus


class LocationCreate(BaseModel):
    location_id: str = Field(min_length=1)
    name: str
    address: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    category: LocationCategory | None = None
    lockers: Dict[SizeClass, int]


class LocationSummary(BaseModel):
    location_id: str
    name: str
    address: str
    latitude: float
    longitude: float
    category: LocationCategory | None
    available: Dict[SizeClass, int]
    capacity: Dict[SizeClass, int]


class Availability(BaseModel):
    location_id: str
    size_class: SizeClass
    available: int


class LockerStatusOut(BaseModel):
    locker_id: str
    location_id: str
    number: str
    size_class: SizeClass
    dimensions: str
    status: LockerStatus
    current_rental_id: str | None


class RentalCreate(BaseModel):
    user_id: str = Field(min_length=1)
    location_id: str
    size_class: SizeClass
    plan_tier: PlanTier = PlanTier.STANDARD
    duration_class: DurationClass = DurationClass.HOURLY
    hold: bool = False


class RentalOut(BaseModel):
    rental_id: str
    user_id: str
    location_id: str
    locker_id: str | None
    size_class: SizeClass
    plan_tier: PlanTier
    duration_class: DurationClass
    rental_type: RentalType
    reservation_id: str | None
    status: RentalStatus
    created_at: datetime
    start_time: datetime | None
    end_time: datetime | None
    total_price: Decimal | None


class UserRentals(BaseModel):
    current: List[RentalOut]
    past: List[RentalOut]


class ReservationCreate(BaseModel):
    user_id: str = Field(min_length=1)
    location_id: str
    size_class: SizeClass
    dates: List[date]


class ReservationConvert(BaseModel):
    plan_tier: PlanTier = PlanTier.STANDARD
    duration_class: DurationClass = DurationClass.DAILY


class ReservationOut(BaseModel):
    reservation_id: str
    user_id: str
    location_id: str
    size_class: SizeClass
    dates: List[date]
    status: ReservationStatus
    created_at: datetime
    confirmed_at: datetime | None
    rental_id: str | None


class Statistics(BaseModel):
    counters: Dict[str, int]
    total_revenue: Decimal
    state_hash: str
    updated_at: datetime | None


class RecoveryReport(BaseModel):
    released_locker_ids: List[str]
