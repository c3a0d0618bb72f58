from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass


@dataclass
class _RateState:
    """Token bucket state for rate limiting."""

    tokens: float
    last_refill: float


class RateLimiter:
    """Per-connection token bucket.

    Buckets start full and refill continuously at ``per_minute / 60`` tokens
    per second, capped at ``per_minute``.
    """

    def __init__(
        self, per_minute: int, *, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.per_minute = max(1, int(per_minute))
        self._clock = clock
        self._lock = threading.Lock()
        self._rate: dict[str, _RateState] = {}

    def refill_and_take(self, connection_id: str, cost: float = 1.0) -> bool:
        """Return True if ``cost`` tokens were available and taken."""
        with self._lock:
            now = self._clock()
            per_min = float(self.per_minute)
            state = self._rate.get(connection_id)
            if state is None:
                state = _RateState(tokens=per_min, last_refill=now)
                self._rate[connection_id] = state

            elapsed = max(0.0, now - state.last_refill)
            state.tokens = min(per_min, state.tokens + elapsed * (per_min / 60.0))
            state.last_refill = now

            if state.tokens < cost:
                return False

            state.tokens -= cost
            return True

    def forget(self, connection_id: str) -> None:
        with self._lock:
            self._rate.pop(connection_id, None)

    def clear_all(self) -> None:
        with self._lock:
            self._rate.clear()
