"""
Per-provider circuit breaker.

Closed → open after ``failure_threshold`` consecutive failures; open calls
are skipped until ``cooldown_seconds`` have elapsed since opening, then the
breaker closes again with a cleared counter.
"""

import threading
import time
from dataclasses import asdict, dataclass
from typing import Callable, Optional

from rag_memory.telemetry import get_logger

logger = get_logger(__name__)


@dataclass
class BreakerState:
    """Snapshot of a breaker. Process-lifetime only, never persisted."""
    consecutive_failures: int = 0
    last_failure_time: Optional[float] = None
    opened_at: Optional[float] = None
    open: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


class CircuitBreaker:
    """
    Thread-safe failure counter guarding one provider.

    Failures reported by in-flight calls after the breaker opened only bump
    the counter; they do not move the cool-down window.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 3,
        cooldown_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = max(1, failure_threshold)
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._state = BreakerState()
        self._lock = threading.Lock()

    def allow_request(self) -> bool:
        """True if the provider may be called now."""
        with self._lock:
            if not self._state.open:
                return True
            if self._clock() - self._state.opened_at >= self.cooldown_seconds:
                self._state = BreakerState()
                logger.info("breaker_closed", provider=self.name)
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            self._state = BreakerState()

    def record_failure(self) -> None:
        with self._lock:
            now = self._clock()
            self._state.consecutive_failures += 1
            self._state.last_failure_time = now
            if not self._state.open and self._state.consecutive_failures >= self.failure_threshold:
                self._state.open = True
                self._state.opened_at = now
                logger.warning(
                    "breaker_opened",
                    provider=self.name,
                    failures=self._state.consecutive_failures,
                    cooldown_seconds=self.cooldown_seconds,
                )

    def reset(self) -> None:
        with self._lock:
            self._state = BreakerState()

    @property
    def state(self) -> BreakerState:
        with self._lock:
            return BreakerState(**asdict(self._state))

    @property
    def is_open(self) -> bool:
        with self._lock:
            return self._state.open
