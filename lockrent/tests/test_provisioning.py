from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from lockrent.core.entities.locker import LockerStatus, SizeClass
from lockrent.core.entities.location import LocationCategory
from lockrent.core.entities.rental import DurationClass, PlanTier
from lockrent.core.exceptions import PersistenceTimeout, ValidationError
from lockrent.infrastructure.provisioning import load_provisioning, parse_provisioning
from lockrent.services.lockrent_service import seed_inventory_service
from lockrent.tests.support import System, provision

_SHIPPED = Path(__file__).resolve().parents[1] / "provisioning" / "lockers.yaml"


def test_provision_numbers_lockers_across_sizes(system: System) -> None:
    location = provision(system, "A001", small=2, medium=1, large=1)

    assert location.capacity == {SizeClass.SMALL: 2, SizeClass.MEDIUM: 1, SizeClass.LARGE: 1}
    lockers = system.locker_repo.list_all()
    assert [(locker.locker_id, locker.size_class) for locker in lockers] == [
        ("A001-001", SizeClass.SMALL),
        ("A001-002", SizeClass.SMALL),
        ("A001-003", SizeClass.MEDIUM),
        ("A001-004", SizeClass.LARGE),
    ]
    assert all(locker.status is LockerStatus.AVAILABLE and locker.current_rental_id is None for locker in lockers)
    assert system.statistics.snapshot().get("lockers.total") == 4


def test_provision_rejects_duplicates_and_negative_counts(system: System) -> None:
    provision(system, "A001", small=1)

    with pytest.raises(ValidationError):
        provision(system, "A001", small=1)
    with pytest.raises(ValidationError):
        provision(system, "B001", small=-1)
    with pytest.raises(ValidationError):
        provision(system, "", small=1)


def test_failed_write_leaves_no_location_without_lockers(
    system: System, db: Session, monkeypatch: pytest.MonkeyPatch
) -> None:
    real_commit = db.commit
    locked = [True]

    def _commit_locked_once():
        if locked:
            locked.clear()
            raise OperationalError("COMMIT", {}, Exception("database is locked"))
        real_commit()

    monkeypatch.setattr(db, "commit", _commit_locked_once)

    with pytest.raises(PersistenceTimeout):
        provision(system, "A001", small=2, large=1)

    assert system.location_repo.get("A001") is None
    assert system.locker_repo.list_all() == []

    location = provision(system, "A001", small=2, large=1)

    assert location.capacity[SizeClass.SMALL] == 2
    assert [locker.locker_id for locker in system.locker_repo.list_all()] == ["A001-001", "A001-002", "A001-003"]
    assert system.location_repo.get("A001").available == {SizeClass.SMALL: 2, SizeClass.MEDIUM: 0, SizeClass.LARGE: 1}


def test_shipped_file_matches_default_rates() -> None:
    plan = load_provisioning(_SHIPPED)

    assert [seed.location_id for seed in plan.locations] == ["A001", "B001", "C001", "D001", "E001"]
    assert plan.locations[0].category is LocationCategory.CITY_CENTERS
    assert plan.locations[2].category is None
    assert sum(plan.locations[0].lockers.values()) == 10
    assert plan.rates.rate(PlanTier.PREMIUM, DurationClass.MONTHLY) == Decimal("180.00")


def test_parse_rejects_unknown_size() -> None:
    with pytest.raises(ValidationError):
        parse_provisioning({"locations": [{"id": "X", "name": "x", "lockers": {"Huge": 1}}]})


def test_missing_file_means_empty_plan(tmp_path: Path) -> None:
    assert load_provisioning(tmp_path / "absent.yaml").locations == []


def test_seed_runs_once(db: Session) -> None:
    assert seed_inventory_service(db, _SHIPPED) == 5
    assert seed_inventory_service(db, _SHIPPED) == 0

    assert db.execute(text("SELECT COUNT(*) FROM lockers")).scalar() == 50
