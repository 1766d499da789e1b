"""
Provisioning file loader.

The file is YAML with two optional top-level keys:

    pricing:                     # overrides the default rate table
      Standard: {Hourly: "2.99", Daily: "15.00"}
    locations:
      - id: A001
        name: Smart Locker Shop - A-001
        address: 123 Market St
        latitude: 37.7749
        longitude: -122.4194
        category: City Centers   # optional
        lockers: {Small: 5, Medium: 3, Large: 2}
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from lockrent.core.entities.locker import SizeClass
from lockrent.core.entities.location import LocationCategory
from lockrent.core.entities.pricing import DEFAULT_RATES, RateTable
from lockrent.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LocationSeed:
    location_id: str
    name: str
    address: str
    latitude: float
    longitude: float
    lockers: dict[SizeClass, int]
    category: LocationCategory | None = None


@dataclass(frozen=True, slots=True)
class ProvisioningPlan:
    locations: list[LocationSeed] = field(default_factory=list)
    rates: RateTable = DEFAULT_RATES


def load_provisioning(path: Path) -> ProvisioningPlan:
    if not path.exists():
        logger.warning(f"Provisioning file {path} not found, starting with an empty inventory")
        return ProvisioningPlan()

    with path.open(encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    return parse_provisioning(raw)


def parse_provisioning(raw: dict[str, Any]) -> ProvisioningPlan:
    try:
        rates = RateTable.from_mapping(raw.get("pricing") or {})
        locations = [_parse_location(item) for item in raw.get("locations") or []]
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid provisioning file: {e}") from e
    return ProvisioningPlan(locations=locations, rates=rates)


def _parse_location(item: dict[str, Any]) -> LocationSeed:
    category = item.get("category")
    return LocationSeed(
        location_id=str(item["id"]),
        name=item["name"],
        address=item.get("address", ""),
        latitude=float(item.get("latitude", 0.0)),
        longitude=float(item.get("longitude", 0.0)),
        lockers={SizeClass(size): int(count) for size, count in (item.get("lockers") or {}).items()},
        category=LocationCategory(category) if category else None,
    )
