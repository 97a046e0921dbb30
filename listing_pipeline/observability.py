"""
Collaborator interfaces for metrics and health checks.

The pipeline only calls these; transports (Prometheus, StatsD, HTTP health
endpoints) are provided by the host process.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from collections.abc import Callable, Mapping
from typing import Any, Protocol

HealthProbe = Callable[[], dict[str, Any]]


class MetricsSink(Protocol):
    def counter_inc(self, name: str, labels: Mapping[str, str] | None = None) -> None:
        ...

    def gauge_set(
        self,
        name: str,
        value: float,
        labels: Mapping[str, str] | None = None,
    ) -> None:
        ...


class HealthCheckRegistry(Protocol):
    def register_check(self, name: str, probe: HealthProbe) -> None:
        ...


class NullMetricsSink:
    """
    Metrics sink that discards everything.
    """

    def counter_inc(self, name: str, labels: Mapping[str, str] | None = None) -> None:
        return None

    def gauge_set(
        self,
        name: str,
        value: float,
        labels: Mapping[str, str] | None = None,
    ) -> None:
        return None


class InMemoryMetricsSink:
    """
    Thread-safe in-process metrics store, useful for snapshots and tests.
    """

    def __init__(self) -> None:
        self._counters: dict[tuple[str, tuple[tuple[str, str], ...]], int] = defaultdict(int)
        self._gauges: dict[tuple[str, tuple[tuple[str, str], ...]], float] = {}
        self._lock = threading.Lock()

    def counter_inc(self, name: str, labels: Mapping[str, str] | None = None) -> None:
        with self._lock:
            self._counters[(name, _label_key(labels))] += 1

    def gauge_set(
        self,
        name: str,
        value: float,
        labels: Mapping[str, str] | None = None,
    ) -> None:
        with self._lock:
            self._gauges[(name, _label_key(labels))] = value

    def counter(self, name: str, **labels: str) -> int:
        with self._lock:
            return self._counters.get((name, _label_key(labels)), 0)

    def gauge(self, name: str, **labels: str) -> float | None:
        with self._lock:
            return self._gauges.get((name, _label_key(labels)))


class DictHealthCheckRegistry:
    """
    Minimal registry that stores probes by name and runs them on demand.
    """

    def __init__(self) -> None:
        self._checks: dict[str, HealthProbe] = {}

    def register_check(self, name: str, probe: HealthProbe) -> None:
        self._checks[name] = probe

    def run(self) -> dict[str, dict[str, Any]]:
        results: dict[str, dict[str, Any]] = {}
        for name, probe in self._checks.items():
            try:
                results[name] = probe()
            except Exception as exc:
                results[name] = {"status": "down", "error": str(exc)}
        return results


def _label_key(labels: Mapping[str, str] | None) -> tuple[tuple[str, str], ...]:
    if not labels:
        return ()
    return tuple(sorted((str(key), str(value)) for key, value in labels.items()))
