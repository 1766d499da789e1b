from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from lockrent.core.exceptions import PersistenceTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """Retries storage timeouts with exponential backoff. Domain errors are never retried."""

    def __init__(
        self,
        *,
        max_attempts: int = 3,
        initial_delay: float = 0.05,
        max_delay: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self._sleep = sleep

    @classmethod
    def from_settings(cls) -> RetryPolicy:
        from lockrent.infrastructure.config import settings
        return cls(
            max_attempts=settings.retry_max_attempts,
            initial_delay=settings.retry_initial_delay,
            max_delay=settings.retry_max_delay,
        )

    def run(self, operation: Callable[[], T]) -> T:
        delay = self.initial_delay
        for attempt in range(1, self.max_attempts + 1):
            try:
                return operation()
            except PersistenceTimeout:
                if attempt == self.max_attempts:
                    logger.error(f"Storage still unavailable after {attempt} attempts")
                    raise
                logger.warning(f"Storage timeout on attempt {attempt}, retrying in {delay:.2f}s")
                self._sleep(delay)
                delay = min(delay * 2, self.max_delay)
        raise AssertionError("unreachable")
