from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4


class EventType(str, Enum):
    LockerClaimed = "LockerClaimed"
    LockerReleased = "LockerReleased"
    RentalCompleted = "RentalCompleted"
    RentalCancelled = "RentalCancelled"
    ReservationConfirmed = "ReservationConfirmed"


@dataclass(frozen=True, slots=True)
class Event:
    event_id: str
    occurred_at: datetime
    type: EventType
    payload: dict[str, Any]

    @classmethod
    def new(cls, event_type: EventType, *, occurred_at: datetime, **payload: Any) -> Event:
        return cls(event_id=str(uuid4()), occurred_at=occurred_at, type=event_type, payload=payload)
