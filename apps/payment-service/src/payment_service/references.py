from __future__ import annotations

from collections.abc import Callable
import secrets
import threading
import time

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
SUFFIX_LENGTH = 9


def _epoch_ms() -> int:
    return time.time_ns() // 1_000_000


class ReferenceGenerator:
    """Builds ``<namespace>_<user_id>_<epoch ms>_<base36 suffix>`` references.

    The millisecond component never repeats or goes backwards within one
    generator, even when the wall clock does.
    """

    def __init__(self, clock_ms: Callable[[], int] | None = None) -> None:
        self._clock_ms = clock_ms or _epoch_ms
        self._last_ms = 0
        self._lock = threading.Lock()

    def _next_ms(self) -> int:
        with self._lock:
            self._last_ms = max(self._clock_ms(), self._last_ms + 1)
            return self._last_ms

    def generate(self, namespace: str, user_id: str) -> str:
        if not namespace or not user_id:
            raise ValueError("namespace and user_id are required")
        suffix = "".join(secrets.choice(_BASE36) for _ in range(SUFFIX_LENGTH))
        return f"{namespace}_{user_id}_{self._next_ms()}_{suffix}"

