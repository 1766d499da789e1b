from __future__ import annotations


class LockRentError(Exception):
    """Base class for request-scoped failures returned to the caller."""


class NotFoundError(LockRentError):
    """Raise to map to HTTP 404."""


class ValidationError(LockRentError):
    """Raise to map to HTTP 422 (validation error)."""


class NoInventory(LockRentError):
    """No free locker of the requested size at the location. Raise to map to HTTP 409."""

    def __init__(self, location_id: str, size_class: str) -> None:
        super().__init__(f"No {size_class} locker available at location {location_id!r}")
        self.location_id = location_id
        self.size_class = size_class


class InvalidState(LockRentError):
    """Transition attempted from the wrong state. Raise to map to HTTP 409."""


class CapacityExceeded(LockRentError):
    """Reservation would exceed provisioned capacity. Raise to map to HTTP 409."""


class PersistenceConflict(LockRentError):
    """A conditional (compare-and-swap) update matched no row."""


class PersistenceTimeout(LockRentError):
    """A storage call exceeded its deadline. Raise to map to HTTP 503."""
