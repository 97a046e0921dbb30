"""
Structured logging helpers for the ingestion pipeline.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON.

    Fields that are not JSON-native (enums, datetimes, exceptions) are
    rendered with ``str``.
    """

    if not logger.isEnabledFor(level):
        return
    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))


def elapsed_ms(started: float) -> int:
    """
    Milliseconds since a ``time.monotonic()`` reading.
    """

    return int((time.monotonic() - started) * 1000)
