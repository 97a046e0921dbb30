"""
Circuit breaker guarding calls to one origin.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from enum import Enum
from typing import TypeVar

from listing_pipeline.errors import CircuitOpenError
from listing_pipeline.logging_utils import log_event

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker.

    CLOSED opens after ``failure_threshold`` consecutive failures. OPEN fails
    fast until ``reset_timeout_ms`` has elapsed, then turns HALF_OPEN and
    admits a single probe; the probe's outcome closes or reopens the circuit.
    """

    def __init__(
        self,
        *,
        failure_threshold: int,
        reset_timeout_ms: int,
        source: str | None = None,
        is_failure: Callable[[Exception], bool] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._failure_threshold = max(1, failure_threshold)
        self._is_failure = is_failure or (lambda exc: True)
        self._reset_timeout = max(1, reset_timeout_ms) / 1000.0
        self._source = source
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = 0.0
        self._probe_in_flight = False
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            if self._state is CircuitState.OPEN and self._reset_elapsed():
                return CircuitState.HALF_OPEN
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failures

    def call(self, operation: Callable[[], T]) -> T:
        """
        Run ``operation`` under the breaker, recording its outcome.
        """

        is_probe = self._before_call()
        try:
            result = operation()
        except Exception as exc:
            if self._is_failure(exc):
                self._record_failure(is_probe)
            else:
                self._release_probe(is_probe)
            raise
        self._record_success(is_probe)
        return result

    def _before_call(self) -> bool:
        with self._lock:
            if self._state is CircuitState.OPEN:
                if not self._reset_elapsed():
                    raise CircuitOpenError(
                        "Circuit is open; request not attempted.",
                        source=self._source,
                    )
                self._transition(CircuitState.HALF_OPEN)

            if self._state is CircuitState.HALF_OPEN:
                if self._probe_in_flight:
                    raise CircuitOpenError(
                        "Circuit is half-open and a probe is already in flight.",
                        source=self._source,
                    )
                self._probe_in_flight = True
                return True
            return False

    def _record_success(self, is_probe: bool) -> None:
        with self._lock:
            self._failures = 0
            if is_probe:
                self._probe_in_flight = False
                self._transition(CircuitState.CLOSED)

    def _record_failure(self, is_probe: bool) -> None:
        with self._lock:
            if is_probe:
                self._probe_in_flight = False
                self._open()
                return
            self._failures += 1
            if self._state is CircuitState.CLOSED and self._failures >= self._failure_threshold:
                self._open()

    def _release_probe(self, is_probe: bool) -> None:
        if is_probe:
            with self._lock:
                self._probe_in_flight = False

    def _open(self) -> None:
        self._opened_at = self._clock()
        self._transition(CircuitState.OPEN)

    def _reset_elapsed(self) -> bool:
        return self._clock() - self._opened_at >= self._reset_timeout

    def _transition(self, new_state: CircuitState) -> None:
        if new_state is self._state:
            return
        previous = self._state
        self._state = new_state
        log_event(
            logger,
            logging.WARNING if new_state is CircuitState.OPEN else logging.INFO,
            "circuit_state_changed",
            source=self._source,
            previous=previous.value,
            state=new_state.value,
            failures=self._failures,
        )
