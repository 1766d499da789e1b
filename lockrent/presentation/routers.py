from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from lockrent.core.clock import Clock, utc_now
from lockrent.core.entities.locker import SizeClass
from lockrent.core.exceptions import (
    CapacityExceeded,
    InvalidState,
    LockRentError,
    NoInventory,
    NotFoundError,
    PersistenceTimeout,
    ValidationError,
)
from lockrent.infrastructure.database import SessionLocal
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
from lockrent.services.lockrent_service import (
    activate_rental_service,
    cancel_rental_service,
    cancel_reservation_service,
    confirm_reservation_service,
    convert_reservation_service,
    create_location_service,
    create_reservation_service,
    end_maintenance_service,
    end_rental_service,
    get_availability_service,
    get_location_service,
    get_locker_status_service,
    get_rental_service,
    get_reservation_service,
    get_statistics_service,
    list_locations_service,
    list_user_rentals_service,
    list_user_reservations_service,
    rebuild_statistics_service,
    recover_orphaned_lockers_service,
    request_rental_service,
    start_maintenance_service,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_clock() -> Clock:
    return utc_now


def _http_error(e: LockRentError) -> HTTPException:
    """
    404 unknown id, 422 bad input, 409 no inventory / wrong state / over capacity,
    503 storage unavailable.
    """
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ValidationError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, (NoInventory, InvalidState, CapacityExceeded)):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, PersistenceTimeout):
        return HTTPException(status_code=503, detail=str(e))
    logger.error(f"Unmapped error {type(e).__name__}: {e}")
    return HTTPException(status_code=500, detail=str(e))


# -----------------------------
# Locations and lockers
# -----------------------------
@router.post("/locations", response_model=LocationSummary, status_code=201)
def post_locations(body: LocationCreate, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> LocationSummary:
    """
    Provision a location with its locker inventory
    """
    try:
        return create_location_service(body, db, clock)
    except LockRentError as e:
        raise _http_error(e)


@router.get("/locations", response_model=List[LocationSummary])
def get_locations(db: Session = Depends(get_db)) -> List[LocationSummary]:
    try:
        return list_locations_service(db)
    except LockRentError as e:
        raise _http_error(e)


@router.get("/locations/{location_id}", response_model=LocationSummary)
def get_locations_location_id(location_id: str, db: Session = Depends(get_db)) -> LocationSummary:
    """
    Get location summary. Availability figures here are a materialized view and may lag.
    """
    try:
        return get_location_service(location_id, db)
    except LockRentError as e:
        raise _http_error(e)


@router.get("/locations/{location_id}/availability/{size_class}", response_model=Availability)
def get_locations_location_id_availability(
    location_id: str,
    size_class: SizeClass,
    db: Session = Depends(get_db),
) -> Availability:
    """
    Count of Available lockers of one size, read from the lockers themselves
    """
    try:
        return get_availability_service(location_id, size_class, db)
    except LockRentError as e:
        raise _http_error(e)


@router.get("/lockers/{locker_id}", response_model=LockerStatusOut)
def get_lockers_locker_id(locker_id: str, db: Session = Depends(get_db)) -> LockerStatusOut:
    try:
        return get_locker_status_service(locker_id, db)
    except LockRentError as e:
        raise _http_error(e)


@router.post("/lockers/{locker_id}/maintenance", response_model=LockerStatusOut)
def post_lockers_locker_id_maintenance(
    locker_id: str,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> LockerStatusOut:
    """
    Take an Available locker out of service
    """
    try:
        return start_maintenance_service(locker_id, db, clock)
    except LockRentError as e:
        raise _http_error(e)


@router.delete("/lockers/{locker_id}/maintenance", response_model=LockerStatusOut)
def delete_lockers_locker_id_maintenance(
    locker_id: str,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> LockerStatusOut:
    """
    Put a locker in maintenance back into service
    """
    try:
        return end_maintenance_service(locker_id, db, clock)
    except LockRentError as e:
        raise _http_error(e)


# -----------------------------
# Rentals
# -----------------------------
@router.post("/rentals", response_model=RentalOut, status_code=201)
def post_rentals(body: RentalCreate, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> RentalOut:
    """
    Rent a locker now, or hold a Pending rental with `hold=true`

    Returns:
      - 201 with the rental
      - 404 unknown location
      - 409 no free locker of that size
    """
    try:
        return request_rental_service(body, db, clock)
    except LockRentError as e:
        raise _http_error(e)


@router.get("/rentals/{rental_id}", response_model=RentalOut)
def get_rentals_rental_id(rental_id: str, db: Session = Depends(get_db)) -> RentalOut:
    try:
        return get_rental_service(rental_id, db)
    except LockRentError as e:
        raise _http_error(e)


@router.post("/rentals/{rental_id}/activate", response_model=RentalOut)
def post_rentals_rental_id_activate(
    rental_id: str,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> RentalOut:
    try:
        return activate_rental_service(rental_id, db, clock)
    except LockRentError as e:
        raise _http_error(e)


@router.post("/rentals/{rental_id}/end", response_model=RentalOut)
def post_rentals_rental_id_end(
    rental_id: str,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> RentalOut:
    """
    Complete an Active rental, price it and free its locker

    Returns:
      - 200 with the completed rental
      - 409 if the rental is not Active (already ended, still pending, cancelled)
    """
    try:
        return end_rental_service(rental_id, db, clock)
    except LockRentError as e:
        raise _http_error(e)


@router.post("/rentals/{rental_id}/cancel", response_model=RentalOut)
def post_rentals_rental_id_cancel(
    rental_id: str,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> RentalOut:
    try:
        return cancel_rental_service(rental_id, db, clock)
    except LockRentError as e:
        raise _http_error(e)


@router.get("/users/{user_id}/rentals", response_model=UserRentals)
def get_users_user_id_rentals(user_id: str, db: Session = Depends(get_db)) -> UserRentals:
    try:
        return list_user_rentals_service(user_id, db)
    except LockRentError as e:
        raise _http_error(e)


# -----------------------------
# Reservations
# -----------------------------
@router.post("/reservations", response_model=ReservationOut, status_code=201)
def post_reservations(
    body: ReservationCreate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ReservationOut:
    """
    Hold capacity at a location for one or more future dates

    Returns:
      - 201 with the Pending reservation
      - 409 if any date is already at capacity
      - 422 on empty or past dates
    """
    try:
        return create_reservation_service(body, db, clock)
    except LockRentError as e:
        raise _http_error(e)


@router.get("/reservations/{reservation_id}", response_model=ReservationOut)
def get_reservations_reservation_id(reservation_id: str, db: Session = Depends(get_db)) -> ReservationOut:
    try:
        return get_reservation_service(reservation_id, db)
    except LockRentError as e:
        raise _http_error(e)


@router.post("/reservations/{reservation_id}/confirm", response_model=ReservationOut)
def post_reservations_reservation_id_confirm(
    reservation_id: str,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ReservationOut:
    try:
        return confirm_reservation_service(reservation_id, db, clock)
    except LockRentError as e:
        raise _http_error(e)


@router.post("/reservations/{reservation_id}/convert", response_model=RentalOut, status_code=201)
def post_reservations_reservation_id_convert(
    reservation_id: str,
    body: ReservationConvert | None = None,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> RentalOut:
    """
    Turn a Confirmed reservation into an Active rental on one of its dates
    """
    try:
        return convert_reservation_service(reservation_id, body or ReservationConvert(), db, clock)
    except LockRentError as e:
        raise _http_error(e)


@router.post("/reservations/{reservation_id}/cancel", response_model=ReservationOut)
def post_reservations_reservation_id_cancel(
    reservation_id: str,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ReservationOut:
    try:
        return cancel_reservation_service(reservation_id, db, clock)
    except LockRentError as e:
        raise _http_error(e)


@router.get("/users/{user_id}/reservations", response_model=List[ReservationOut])
def get_users_user_id_reservations(user_id: str, db: Session = Depends(get_db)) -> List[ReservationOut]:
    try:
        return list_user_reservations_service(user_id, db)
    except LockRentError as e:
        raise _http_error(e)


# -----------------------------
# Statistics and maintenance
# -----------------------------
@router.get("/statistics", response_model=Statistics)
def get_statistics(db: Session = Depends(get_db)) -> Statistics:
    """
    Incrementally maintained counters; may drift until the next rebuild
    """
    try:
        return get_statistics_service(db)
    except LockRentError as e:
        raise _http_error(e)


@router.post("/statistics/rebuild", response_model=Statistics)
def post_statistics_rebuild(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> Statistics:
    try:
        return rebuild_statistics_service(db, clock)
    except LockRentError as e:
        raise _http_error(e)


@router.post("/maintenance/recover", response_model=RecoveryReport)
def post_maintenance_recover(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> RecoveryReport:
    """
    Release lockers still Occupied by rentals that are no longer Active
    """
    try:
        return recover_orphaned_lockers_service(db, clock)
    except LockRentError as e:
        raise _http_error(e)
