import logging
import time
from typing import Any, Awaitable, Callable, Tuple, Type

from fastapi import HTTPException

from .errors import DependencyFailure

logger = logging.getLogger(__name__)


class CircuitOpenError(DependencyFailure):
    default_message = "Service temporarily unavailable. Please try again later."


class CircuitBreaker:
    """Opens after consecutive unexpected failures and backs off exponentially.

    Exceptions listed in ``ignored`` are business outcomes (4xx, conflicts)
    and pass through without counting as failures.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 3,
        base_recovery_time: int = 10,
        max_recovery_time: int = 60,
        ignored: Tuple[Type[BaseException], ...] = (HTTPException,),
    ):
        self.name = name
        self.failure_count = 0
        self.failure_threshold = failure_threshold
        self.base_recovery_time = base_recovery_time
        self.max_recovery_time = max_recovery_time
        self.ignored = ignored
        self.last_failure_time = 0.0
        self.state = "CLOSED"

    @property
    def current_recovery_time(self) -> float:
        return min(
            self.base_recovery_time
            * (2 ** max(self.failure_count - self.failure_threshold, 0)),
            self.max_recovery_time,
        )

    def _open(self):
        self.state = "OPEN"
        self.last_failure_time = time.time()
        logger.warning(
            "Circuit %s opened after %s failures.", self.name, self.failure_count
        )

    def _half_open(self):
        self.state = "HALF_OPEN"
        logger.info("Circuit %s half-open: testing...", self.name)

    def _close(self):
        if self.state != "CLOSED":
            logger.info("Circuit %s closed: stable again.", self.name)
        self.state = "CLOSED"
        self.failure_count = 0

    def reset(self):
        self.state = "CLOSED"
        self.failure_count = 0
        self.last_failure_time = 0.0

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        now = time.time()

        if self.state == "OPEN":
            cooldown = self.current_recovery_time
            elapsed = now - self.last_failure_time
            if elapsed < cooldown:
                raise CircuitOpenError(
                    f"{self.name} unavailable, retry after {cooldown - elapsed:.1f}s"
                )
            self._half_open()

        try:
            result = await func(*args, **kwargs)
        except self.ignored:
            self._close()
            raise
        except Exception as e:
            self.failure_count += 1
            logger.error(
                "CircuitBreaker %s call failed (%s): %s", self.name, self.failure_count, e
            )
            if self.state == "HALF_OPEN" or self.failure_count >= self.failure_threshold:
                self._open()
            raise

        self._close()
        return result


breaker = CircuitBreaker("database", failure_threshold=5, base_recovery_time=5)
outbound_breaker = CircuitBreaker("outbound", failure_threshold=3, base_recovery_time=10)
