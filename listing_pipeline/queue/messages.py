"""
Queue message envelope and header names.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace

ATTEMPT_HEADER = "x-attempt"
ORIGINAL_TOPIC_HEADER = "x-original-topic"
SOURCE_HEADER = "source"
RECORD_KIND_HEADER = "record-kind"
TIMESTAMP_HEADER = "timestamp"


@dataclass(frozen=True)
class QueueMessage:
    """
    One message as published or consumed.

    ``attempt`` mirrors the ``x-attempt`` header and only grows when the
    consumer reroutes the message to the dead-letter topic. ``partition`` and
    ``offset`` are set on consumed messages.
    """

    topic: str
    payload: bytes
    key: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    attempt: int = 0
    partition: int | None = None
    offset: int | None = None

    @property
    def original_topic(self) -> str:
        return self.headers.get(ORIGINAL_TOPIC_HEADER) or self.topic

    def rerouted(self, dead_letter_topic: str) -> QueueMessage:
        """
        Copy bound for the dead-letter topic with the attempt incremented.
        """

        next_attempt = self.attempt + 1
        headers = {
            **self.headers,
            ATTEMPT_HEADER: str(next_attempt),
            ORIGINAL_TOPIC_HEADER: self.original_topic,
        }
        return replace(
            self,
            topic=dead_letter_topic,
            headers=headers,
            attempt=next_attempt,
            partition=None,
            offset=None,
        )

    def kafka_headers(self) -> list[tuple[str, bytes]]:
        return [(name, value.encode("utf-8")) for name, value in self.headers.items()]


def decode_headers(raw_headers: Iterable[tuple[str, bytes | None]] | None) -> dict[str, str]:
    headers: dict[str, str] = {}
    for name, value in raw_headers or ():
        if value is None:
            continue
        headers[name] = value.decode("utf-8", errors="replace")
    return headers


def read_attempt(headers: dict[str, str]) -> int:
    raw = headers.get(ATTEMPT_HEADER)
    if raw is None:
        return 0
    try:
        return max(0, int(raw))
    except ValueError:
        return 0
