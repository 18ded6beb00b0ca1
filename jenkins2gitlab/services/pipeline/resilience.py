"""
Enrichment Resilience Helpers

Circuit breaker and bounded TTL cache used around the enrichment
collaborator. Both take an injectable clock so tests control time.

Circuit breaker state machine:
    CLOSED -> OPEN:      consecutive failures >= failure_threshold
    OPEN -> HALF_OPEN:   recovery_timeout elapsed
    HALF_OPEN -> CLOSED: trial call succeeds
    HALF_OPEN -> OPEN:   trial call fails
"""
import logging
import threading
import time
from collections import OrderedDict
from enum import Enum
from typing import Any, Callable, Dict, Hashable, Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Circuit breaker
# ---------------------------------------------------------------------------
class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Thread-safe in-memory circuit breaker."""

    def __init__(
        self,
        name: str = "enrichment",
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        half_open_max_calls: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_max_calls = half_open_max_calls
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._half_open_calls = 0
        self._last_failure_time = 0.0
        self._lock = threading.Lock()

    def allow_request(self) -> bool:
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return True

            if self._state == CircuitState.OPEN:
                if self._clock() - self._last_failure_time >= self.recovery_timeout:
                    self._transition_to(CircuitState.HALF_OPEN)
                    self._half_open_calls = 1
                    return True
                return False

            if self._half_open_calls < self.half_open_max_calls:
                self._half_open_calls += 1
                return True
            return False

    def record_success(self):
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.CLOSED)
            self._failure_count = 0

    def record_failure(self):
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()

            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN)
            elif self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
                self._transition_to(CircuitState.OPEN)

    def get_state(self) -> CircuitState:
        with self._lock:
            return self._state

    def reset(self):
        with self._lock:
            self._transition_to(CircuitState.CLOSED)
            self._failure_count = 0
            self._half_open_calls = 0

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "failure_count": self._failure_count,
                "failure_threshold": self.failure_threshold,
                "recovery_timeout": self.recovery_timeout,
            }

    def _transition_to(self, new_state: CircuitState):
        if new_state != self._state:
            logger.info(f"Circuit breaker '{self.name}': {self._state.value} -> {new_state.value}")
            self._state = new_state


# ---------------------------------------------------------------------------
# TTL cache
# ---------------------------------------------------------------------------
class TTLCache:
    """Bounded mapping whose entries expire after ttl seconds.

    When full, the least recently written entry is evicted.
    """

    def __init__(self, ttl: float = 24 * 60 * 60, max_entries: int = 1000,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._data: "OrderedDict[Hashable, tuple]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                self.misses += 1
                return None
            expires_at, value = item
            if self._clock() >= expires_at:
                del self._data[key]
                self.misses += 1
                return None
            self.hits += 1
            return value

    def set(self, key: Hashable, value: Any):
        with self._lock:
            if key in self._data:
                del self._data[key]
            self._data[key] = (self._clock() + self.ttl, value)
            while len(self._data) > self.max_entries:
                self._data.popitem(last=False)

    def clear(self):
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
