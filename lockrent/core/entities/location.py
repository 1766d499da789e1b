from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from lockrent.core.entities.locker import SizeClass


class LocationCategory(str, Enum):
    AIRPORTS = "Airports"
    STATIONS = "Stations"
    CITY_CENTERS = "City Centers"


@dataclass(slots=True)
class Location:
    """
    A locker site. `available` is a materialized view of the lockers table and
    may lag behind it; `capacity` is the provisioned inventory per size.
    """
    location_id: str
    name: str
    address: str
    latitude: float
    longitude: float
    category: LocationCategory | None = None
    available: dict[SizeClass, int] = field(default_factory=dict)
    capacity: dict[SizeClass, int] = field(default_factory=dict)
