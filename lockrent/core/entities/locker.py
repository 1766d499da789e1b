from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class SizeClass(str, Enum):
    SMALL = "Small"
    MEDIUM = "Medium"
    LARGE = "Large"

    @property
    def dimensions(self) -> str:
        return _DIMENSIONS[self]


_DIMENSIONS = {
    SizeClass.SMALL: "30 x 30 x 45 cm",
    SizeClass.MEDIUM: "45 x 45 x 60 cm",
    SizeClass.LARGE: "60 x 60 x 90 cm",
}


class LockerStatus(str, Enum):
    AVAILABLE = "Available"
    OCCUPIED = "Occupied"
    RESERVED = "Reserved"
    MAINTENANCE = "Maintenance"


@dataclass(slots=True)
class Locker:
    locker_id: str
    location_id: str
    size_class: SizeClass
    number: str
    status: LockerStatus = LockerStatus.AVAILABLE
    current_rental_id: str | None = None
    updated_at: datetime | None = None

    @property
    def is_consistent(self) -> bool:
        """Occupied if and only if a rental owns the locker."""
        return (self.status is LockerStatus.OCCUPIED) == (self.current_rental_id is not None)

    def ref(self) -> LockerRef:
        return LockerRef(
            locker_id=self.locker_id,
            location_id=self.location_id,
            size_class=self.size_class,
            number=self.number,
        )


@dataclass(frozen=True, slots=True)
class LockerRef:
    """Handle returned by a successful claim."""
    locker_id: str
    location_id: str
    size_class: SizeClass
    number: str
