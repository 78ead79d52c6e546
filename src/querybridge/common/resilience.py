"""
Resilience Module: Circuit Breakers per datasource.

Each configured datasource gets its own `pybreaker` breaker so one unreachable
backend fails fast without affecting the others. Client-side failures (bad
credentials, malformed queries, missing settings) are excluded: they say
nothing about the health of the backend.

pybreaker treats an excluded error as a success: it resets the consecutive
failure count. A client error between two backend failures therefore keeps
the breaker closed, and `fail_max` counts uninterrupted backend failures only.
"""
import threading
from typing import Dict, Optional, List, Type

import pybreaker

from querybridge.common.errors import (
    AuthError,
    ConfigurationError,
    InstanceDisposedError,
    InvalidQueryError,
    QueryCancelledError,
)
from querybridge.common.logger import get_logger
from querybridge.common.metrics import breaker_state_counter

logger = get_logger("resilience")

CLIENT_ERRORS: List[Type[Exception]] = [
    AuthError,
    ConfigurationError,
    InvalidQueryError,
    QueryCancelledError,
    InstanceDisposedError,
]


class ObservabilityListener(pybreaker.CircuitBreakerListener):
    """Listener to export circuit breaker state changes and failures to logs/metrics."""

    def state_change(self, cb, old_state, new_state):
        logger.warning(
            f"Circuit Breaker '{cb.name}' changed state: {old_state.name} -> {new_state.name}"
        )
        breaker_state_counter.add(1, {"breaker": cb.name, "state": new_state.name})

    def failure(self, cb, exc):
        logger.error(
            f"Circuit Breaker '{cb.name}' recorded failure: {type(exc).__name__}: {exc}"
        )


def create_breaker(
    name: str,
    fail_max: int = 5,
    reset_timeout: int = 60,
    exclude: Optional[List[Type[Exception]]] = None
) -> pybreaker.CircuitBreaker:
    """Factory to create a configured Circuit Breaker."""
    return pybreaker.CircuitBreaker(
        fail_max=fail_max,
        reset_timeout=reset_timeout,
        name=name,
        listeners=[ObservabilityListener()],
        exclude=exclude or []
    )


class BreakerRegistry:
    """Lazily creates and caches one breaker per datasource id."""

    def __init__(self, fail_max: int = 5, reset_timeout: int = 30):
        self._fail_max = fail_max
        self._reset_timeout = reset_timeout
        self._breakers: Dict[str, pybreaker.CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get(self, datasource_id: str) -> pybreaker.CircuitBreaker:
        breaker = self._breakers.get(datasource_id)
        if breaker is not None:
            return breaker
        with self._lock:
            breaker = self._breakers.get(datasource_id)
            if breaker is None:
                breaker = create_breaker(
                    name=f"datasource:{datasource_id}",
                    fail_max=self._fail_max,
                    reset_timeout=self._reset_timeout,
                    exclude=CLIENT_ERRORS,
                )
                self._breakers[datasource_id] = breaker
            return breaker

    def reset(self, datasource_id: str) -> None:
        """Drops the breaker of a datasource, e.g. after its settings changed."""
        with self._lock:
            self._breakers.pop(datasource_id, None)
