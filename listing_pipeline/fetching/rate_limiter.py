"""
Token reservoir rate limiter shared by one fetcher's concurrent calls.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from listing_pipeline.errors import RateLimitError, ScrapeCancelledError

CANCEL_POLL_SECONDS = 0.1


@dataclass(frozen=True)
class RateLimiterState:
    """
    Point-in-time view of the reservoir.
    """

    tokens: int
    capacity: int
    refill_interval_ms: int
    refill_amount: int


class TokenBucketRateLimiter:
    """
    Reservoir of request tokens replenished on a fixed schedule.

    Callers that find the reservoir empty queue in arrival order and wait
    across refill ticks instead of being rejected. Only ``drain()``, an
    explicit timeout or cancellation ends a wait without a token.
    """

    def __init__(
        self,
        *,
        capacity: int,
        refill_interval_ms: int,
        refill_amount: int | None = None,
        source: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._capacity = max(1, capacity)
        self._refill_interval = max(1, refill_interval_ms) / 1000.0
        self._refill_interval_ms = max(1, refill_interval_ms)
        self._refill_amount = max(1, refill_amount if refill_amount is not None else self._capacity)
        self._source = source
        self._clock = clock
        self._tokens = self._capacity
        self._last_refill = clock()
        self._draining = False
        self._waiters: deque[object] = deque()
        self._condition = threading.Condition()

    @property
    def state(self) -> RateLimiterState:
        with self._condition:
            self._refill_locked()
            return RateLimiterState(
                tokens=self._tokens,
                capacity=self._capacity,
                refill_interval_ms=self._refill_interval_ms,
                refill_amount=self._refill_amount,
            )

    def acquire(
        self,
        *,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> float:
        """
        Take one token, queueing behind earlier callers across refills.

        Returns the seconds spent waiting. Raises ``RateLimitError`` if the
        limiter drains or ``timeout`` elapses first, and
        ``ScrapeCancelledError`` once ``cancel_event`` is set.
        """

        started = self._clock()
        deadline = None if timeout is None else started + max(0.0, timeout)
        ticket = object()

        with self._condition:
            self._waiters.append(ticket)
            try:
                while True:
                    if self._draining:
                        raise RateLimitError(
                            "Rate limiter is draining; no new requests are admitted.",
                            source=self._source,
                        )
                    if cancel_event is not None and cancel_event.is_set():
                        raise ScrapeCancelledError("Cancelled while waiting for a request token.")
                    self._refill_locked()
                    if self._tokens > 0 and self._waiters[0] is ticket:
                        self._tokens -= 1
                        return self._clock() - started

                    now = self._clock()
                    wait_for = (self._last_refill + self._refill_interval) - now
                    if deadline is not None:
                        remaining = deadline - now
                        if remaining <= 0:
                            raise RateLimitError(
                                f"No request token available within {timeout:.3f}s.",
                                source=self._source,
                            )
                        wait_for = min(wait_for, remaining)
                    if cancel_event is not None:
                        wait_for = min(wait_for, CANCEL_POLL_SECONDS)
                    self._condition.wait(timeout=max(0.001, wait_for))
            finally:
                self._waiters.remove(ticket)
                self._condition.notify_all()

    def drain(self) -> None:
        """
        Stop admitting new requests and wake every waiter.
        """

        with self._condition:
            self._draining = True
            self._condition.notify_all()

    @property
    def draining(self) -> bool:
        return self._draining

    def _refill_locked(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed < self._refill_interval:
            return
        ticks = int(elapsed // self._refill_interval)
        self._tokens = min(self._capacity, self._tokens + ticks * self._refill_amount)
        self._last_refill += ticks * self._refill_interval
        self._condition.notify_all()
