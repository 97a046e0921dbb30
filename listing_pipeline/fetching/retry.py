"""Retry helpers for transient failures.

Delays follow ``min(base * 2**attempt, max)``. Only errors accepted by the
caller's ``should_retry`` predicate are retried; everything else propagates
on the first occurrence.
"""

from __future__ import annotations

import logging
import random
import threading
from collections.abc import Callable
from typing import TypeVar

from listing_pipeline.config.models import RetryPolicy
from listing_pipeline.errors import ScrapeCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay_ms(
    policy: RetryPolicy,
    attempt: int,
    rng: Callable[[], float] = random.random,
) -> float:
    """Delay before retry number ``attempt`` (zero-based), in milliseconds.

    With ``jitter_ratio`` set, up to that fraction of the capped delay is
    subtracted at random; the result never exceeds ``max_delay_ms``.
    """
    exponential = policy.base_delay_ms * (2 ** max(0, attempt))
    delay = float(min(exponential, policy.max_delay_ms))
    if policy.jitter_ratio > 0:
        delay -= delay * policy.jitter_ratio * rng()
    return delay


def retry_call(
    operation: Callable[[], T],
    *,
    policy: RetryPolicy,
    should_retry: Callable[[Exception], bool],
    cancel_event: threading.Event | None = None,
    sleep: Callable[[float], None] | None = None,
    on_retry: Callable[[int, float, Exception], None] | None = None,
) -> T:
    """Call ``operation`` and re-invoke it on retryable failures.

    Args:
        operation: Zero-argument callable to run.
        policy: Backoff policy. Total attempts = 1 + ``policy.max_retries``.
        should_retry: Predicate deciding whether an error is transient.
        cancel_event: When set, stops retrying at the next backoff.
        sleep: Override for waiting (seconds); defaults to waiting on the
            cancel event so a cancellation interrupts the backoff.
        on_retry: Callback receiving (retry number, delay ms, error).

    Returns:
        The operation's result.

    Raises:
        ScrapeCancelledError: If cancelled before or between attempts.
        Exception: The last error once retries are exhausted, or the first
            non-retryable one.
    """
    event = cancel_event or threading.Event()
    wait = sleep or event.wait

    attempt = 0
    while True:
        if event.is_set():
            raise ScrapeCancelledError("Operation cancelled before attempt.")
        try:
            return operation()
        except Exception as exc:
            if not should_retry(exc) or attempt >= policy.max_retries:
                raise
            delay_ms = backoff_delay_ms(policy, attempt)
            if on_retry is not None:
                on_retry(attempt + 1, delay_ms, exc)
            logger.warning(
                "Attempt %d/%d failed, retrying in %.0fms: %s",
                attempt + 1,
                policy.max_retries + 1,
                delay_ms,
                exc,
            )
            wait(delay_ms / 1000.0)
            if event.is_set():
                raise ScrapeCancelledError("Operation cancelled during backoff.") from exc
            attempt += 1
