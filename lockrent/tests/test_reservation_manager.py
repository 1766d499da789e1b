from __future__ import annotations

from datetime import date, timedelta

import pytest

from lockrent.core.entities.locker import LockerStatus, SizeClass
from lockrent.core.entities.rental import DurationClass, PlanTier, RentalStatus, RentalType
from lockrent.core.entities.reservation import ReservationStatus
from lockrent.core.exceptions import (
    CapacityExceeded,
    InvalidState,
    NoInventory,
    NotFoundError,
    PersistenceTimeout,
    ValidationError,
)
from lockrent.tests.support import FakeClock, System, assert_bidirectional_consistency, provision


def _reserve(system: System, user_id: str, *days: date, size: SizeClass = SizeClass.SMALL):
    return system.reservations.create_reservation(
        user_id=user_id,
        location_id="L1",
        size_class=size,
        dates=days,
    )


def test_create_and_confirm(system: System, clock: FakeClock) -> None:
    provision(system, small=1)
    tomorrow = clock().date() + timedelta(days=1)

    reservation = _reserve(system, "u1", tomorrow, tomorrow + timedelta(days=1))
    assert reservation.status is ReservationStatus.PENDING

    confirmed = system.reservations.confirm_reservation(reservation.reservation_id)
    assert confirmed.status is ReservationStatus.CONFIRMED
    assert confirmed.confirmed_at == clock()

    stored = system.reservations.get_reservation(reservation.reservation_id)
    assert stored.dates == frozenset({tomorrow, tomorrow + timedelta(days=1)})
    assert stored.status is ReservationStatus.CONFIRMED

    with pytest.raises(InvalidState):
        system.reservations.confirm_reservation(reservation.reservation_id)


def test_capacity_is_enforced_per_date(system: System, clock: FakeClock) -> None:
    provision(system, small=2)
    day = clock().date() + timedelta(days=3)

    first = _reserve(system, "u1", day)
    second = _reserve(system, "u2", day)
    system.reservations.confirm_reservation(first.reservation_id)
    system.reservations.confirm_reservation(second.reservation_id)

    with pytest.raises(CapacityExceeded):
        _reserve(system, "u3", day)
    with pytest.raises(CapacityExceeded):
        _reserve(system, "u3", day + timedelta(days=1), day)

    # Another date or another size is unaffected
    _reserve(system, "u3", day + timedelta(days=1))
    with pytest.raises(CapacityExceeded):
        _reserve(system, "u3", day, size=SizeClass.LARGE)


def test_cancelled_reservation_frees_capacity(system: System, clock: FakeClock) -> None:
    provision(system, small=1)
    day = clock().date() + timedelta(days=1)
    reservation = _reserve(system, "u1", day)

    with pytest.raises(CapacityExceeded):
        _reserve(system, "u2", day)

    cancelled = system.reservations.cancel_reservation(reservation.reservation_id)
    assert cancelled.status is ReservationStatus.CANCELLED

    assert _reserve(system, "u2", day).status is ReservationStatus.PENDING
    with pytest.raises(InvalidState):
        system.reservations.cancel_reservation(reservation.reservation_id)


def test_rejects_bad_input(system: System, clock: FakeClock) -> None:
    provision(system, small=1)

    with pytest.raises(ValidationError):
        _reserve(system, "u1")
    with pytest.raises(ValidationError):
        _reserve(system, "u1", clock().date() - timedelta(days=1))
    with pytest.raises(NotFoundError):
        system.reservations.create_reservation(
            user_id="u1", location_id="nowhere", size_class=SizeClass.SMALL, dates=[clock().date()]
        )
    with pytest.raises(NotFoundError):
        system.reservations.get_reservation("missing")


def test_convert_on_reserved_date(system: System, clock: FakeClock) -> None:
    provision(system, small=1)
    reservation = _reserve(system, "u1", clock().date())
    system.reservations.confirm_reservation(reservation.reservation_id)

    rental = system.reservations.convert_to_rental(
        reservation.reservation_id, plan_tier=PlanTier.PREMIUM, duration_class=DurationClass.DAILY
    )

    assert rental.status is RentalStatus.ACTIVE
    assert rental.rental_type is RentalType.RESERVATION
    assert rental.reservation_id == reservation.reservation_id
    stored = system.reservations.get_reservation(reservation.reservation_id)
    assert stored.status is ReservationStatus.CONVERTED
    assert stored.rental_id == rental.rental_id
    assert system.locker_repo.get(rental.locker_id).status is LockerStatus.OCCUPIED
    assert_bidirectional_consistency(system)

    with pytest.raises(InvalidState):
        system.reservations.convert_to_rental(reservation.reservation_id)
    with pytest.raises(InvalidState):
        system.reservations.cancel_reservation(reservation.reservation_id)


def test_convert_requires_confirmation(system: System, clock: FakeClock) -> None:
    provision(system, small=1)
    reservation = _reserve(system, "u1", clock().date())

    with pytest.raises(InvalidState):
        system.reservations.convert_to_rental(reservation.reservation_id)

    assert system.reservations.get_reservation(reservation.reservation_id).status is ReservationStatus.PENDING


def test_convert_outside_reserved_dates(system: System, clock: FakeClock) -> None:
    provision(system, small=1)
    reservation = _reserve(system, "u1", clock().date() + timedelta(days=2))
    system.reservations.confirm_reservation(reservation.reservation_id)

    with pytest.raises(InvalidState):
        system.reservations.convert_to_rental(reservation.reservation_id)

    clock.advance(days=2)
    assert system.reservations.convert_to_rental(reservation.reservation_id).status is RentalStatus.ACTIVE


def test_convert_without_free_unit_reverts_to_confirmed(system: System, clock: FakeClock) -> None:
    provision(system, small=1)
    reservation = _reserve(system, "u1", clock().date())
    system.reservations.confirm_reservation(reservation.reservation_id)
    # Walk-in takes the only unit; capacity holds don't pin units.
    system.lifecycle.request_rental(
        user_id="u2",
        location_id="L1",
        size_class=SizeClass.SMALL,
        plan_tier=PlanTier.STANDARD,
        duration_class=DurationClass.HOURLY,
    )

    with pytest.raises(NoInventory):
        system.reservations.convert_to_rental(reservation.reservation_id)

    stored = system.reservations.get_reservation(reservation.reservation_id)
    assert stored.status is ReservationStatus.CONFIRMED
    assert stored.rental_id is None
    assert_bidirectional_consistency(system)


def test_list_user_reservations(system: System, clock: FakeClock) -> None:
    provision(system, small=2)
    day = clock().date() + timedelta(days=1)
    first = _reserve(system, "u1", day)
    clock.advance(minutes=1)
    second = _reserve(system, "u1", day + timedelta(days=1))
    _reserve(system, "u2", day)

    listed = system.reservations.list_user_reservations("u1")

    assert [r.reservation_id for r in listed] == [second.reservation_id, first.reservation_id]


def test_conversion_survives_an_outage_that_also_blocks_the_revert(
    system: System, clock: FakeClock, monkeypatch: pytest.MonkeyPatch
) -> None:
    provision(system, small=1)
    reservation = _reserve(system, "u1", clock().date())
    system.reservations.confirm_reservation(reservation.reservation_id)

    outage = [True]
    real_request = system.lifecycle.request_rental
    real_transition = system.reservation_repo.transition

    def _request_during_outage(**kwargs):
        if outage:
            raise PersistenceTimeout("claim timed out")
        return real_request(**kwargs)

    def _transition_during_outage(reservation, *, expected):
        if outage and expected is ReservationStatus.CONVERTED:
            raise PersistenceTimeout("revert timed out")
        return real_transition(reservation, expected=expected)

    monkeypatch.setattr(system.lifecycle, "request_rental", _request_during_outage)
    monkeypatch.setattr(system.reservation_repo, "transition", _transition_during_outage)

    with pytest.raises(PersistenceTimeout, match="claim timed out"):
        system.reservations.convert_to_rental(reservation.reservation_id)

    stranded = system.reservations.get_reservation(reservation.reservation_id)
    assert stranded.status is ReservationStatus.CONVERTED
    assert stranded.rental_id is not None

    outage.clear()
    rental = system.reservations.convert_to_rental(reservation.reservation_id)

    assert rental.status is RentalStatus.ACTIVE
    assert rental.rental_id != stranded.rental_id
    stored = system.reservations.get_reservation(reservation.reservation_id)
    assert stored.status is ReservationStatus.CONVERTED
    assert stored.rental_id == rental.rental_id
    assert_bidirectional_consistency(system)


def test_conversion_in_flight_is_not_reopened(system: System, clock: FakeClock) -> None:
    provision(system, small=2)
    reservation = _reserve(system, "u1", clock().date())
    confirmed = system.reservations.confirm_reservation(reservation.reservation_id)

    # Another arrival has marked it Converted and already holds a unit, but has not written its rental yet.
    confirmed.mark_converted("in-flight")
    system.reservation_repo.transition(confirmed, expected=ReservationStatus.CONFIRMED)
    system.inventory.claim_locker("L1", SizeClass.SMALL, "in-flight")

    with pytest.raises(InvalidState):
        system.reservations.convert_to_rental(reservation.reservation_id)

    stored = system.reservations.get_reservation(reservation.reservation_id)
    assert stored.status is ReservationStatus.CONVERTED
    assert stored.rental_id == "in-flight"
    assert system.inventory.get_available_count("L1", SizeClass.SMALL) == 1
