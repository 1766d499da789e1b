from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable
from uuid import uuid4

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())
