"""
HTTP and Kafka doubles for the pipeline tests.

Nothing here touches the network or a broker: HTTP goes through a scripted
session double and Kafka through an in-memory producer client.
"""

from __future__ import annotations

from collections import deque
from types import SimpleNamespace
from typing import Any

import requests
from kafka.errors import KafkaTimeoutError

LONG_TEXT = (
    "A compact solid-state battery chemistry that doubles energy density while "
    "remaining stable at room temperature, validated in pouch cells."
)


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


def make_response(
    status_code: int = 200,
    text: str = "<html><body></body></html>",
    url: str = "https://example.edu/tech",
) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = text.encode("utf-8")
    response.encoding = "utf-8"
    response.url = url
    response.headers["Content-Type"] = "text/html"
    return response


class ScriptedSession:
    """
    ``requests.Session`` stand-in replaying queued responses or exceptions.
    """

    def __init__(self, *outcomes: requests.Response | Exception) -> None:
        self.outcomes: deque[requests.Response | Exception] = deque(outcomes)
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def queue(self, *outcomes: requests.Response | Exception) -> None:
        self.outcomes.extend(outcomes)

    def get(self, url: str, **kwargs: Any) -> requests.Response:
        self.calls.append({"url": url, **kwargs})
        if not self.outcomes:
            raise AssertionError(f"Unexpected GET {url}")
        outcome = self.outcomes.popleft()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Kafka
# ---------------------------------------------------------------------------


class _Future:
    def __init__(self, metadata: Any = None, error: Exception | None = None) -> None:
        self._metadata = metadata
        self._error = error

    def get(self, timeout: float | None = None) -> Any:
        if self._error is not None:
            raise self._error
        return self._metadata


class FakeKafkaProducerClient:
    """
    In-memory ``KafkaProducer`` double; ``fail_next`` sends time out.
    """

    def __init__(self, fail_next: int = 0) -> None:
        self.sent: list[dict[str, Any]] = []
        self.fail_next = fail_next
        self.fail_always = False
        self.flushed = False
        self.closed = False
        self.connected = True

    def send(self, topic: str, *, value: bytes, key: bytes | None, headers: list) -> _Future:
        if self.fail_always or self.fail_next > 0:
            self.fail_next = max(0, self.fail_next - 1)
            return _Future(error=KafkaTimeoutError("ack timed out"))
        offset = len(self.sent)
        self.sent.append(
            {
                "topic": topic,
                "value": value,
                "key": key,
                "headers": dict((name, raw.decode("utf-8")) for name, raw in headers),
            }
        )
        return _Future(metadata=SimpleNamespace(topic=topic, partition=0, offset=offset))

    def flush(self, timeout: float | None = None) -> None:
        self.flushed = True

    def close(self, timeout: float | None = None) -> None:
        self.closed = True

    def bootstrap_connected(self) -> bool:
        return self.connected

