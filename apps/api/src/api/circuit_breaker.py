from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Awaitable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


class CircuitOpenError(Exception):
    """Raised when calls are blocked by an open circuit."""


@dataclass
class CircuitBreakerState:
    failure_count: int = 0
    opened_at_seconds: float | None = None


class CircuitBreaker:
    """Stops calling a failing upstream for ``recovery_timeout_seconds``.

    After the timeout one trial call goes through; its outcome closes the
    circuit or opens it again.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 3,
        recovery_timeout_seconds: float = 30,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._name = name
        self._failure_threshold = failure_threshold
        self._recovery_timeout_seconds = recovery_timeout_seconds
        self._clock = clock
        self._state = CircuitBreakerState()

    @property
    def is_open(self) -> bool:
        return self._blocking(self._clock())

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        now = self._clock()
        if self._blocking(now):
            logger.warning("circuit_open", extra={"component": "api", "circuit": self._name})
            raise CircuitOpenError(f"{self._name} circuit is open")

        try:
            result = await operation()
        except Exception:
            self._record_failure(self._clock())
            raise
        self._record_success()
        return result

    def _blocking(self, now: float) -> bool:
        opened_at = self._state.opened_at_seconds
        if opened_at is None:
            return False
        if now - opened_at >= self._recovery_timeout_seconds:
            # half-open: one more failure re-opens immediately
            self._state.opened_at_seconds = None
            self._state.failure_count = self._failure_threshold - 1
            logger.info("circuit_half_open", extra={"component": "api", "circuit": self._name})
            return False
        return True

    def _record_failure(self, now: float) -> None:
        self._state.failure_count += 1
        if self._state.failure_count >= self._failure_threshold:
            self._state.opened_at_seconds = now
            logger.error(
                "circuit_opened",
                extra={
                    "component": "api",
                    "circuit": self._name,
                    "failure_count": self._state.failure_count,
                },
            )

    def _record_success(self) -> None:
        self._state.failure_count = 0
        self._state.opened_at_seconds = None
