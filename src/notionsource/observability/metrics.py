"""Metrics hook protocol and no-op default implementation.

notionsource emits counters and timings at a few key points (API requests,
retries, cache lookups, emitted documents).  By default a
:class:`NoopMetricsHook` is used so there is zero overhead.  Pass any object
satisfying :class:`MetricsHook` as ``SourceConfig.metrics`` to route them to
StatsD, Prometheus or similar.

Emitted metric names:

* ``notionsource.requests_total``       -- counter
* ``notionsource.request_duration_ms``  -- timing
* ``notionsource.retries_total``        -- counter
* ``notionsource.cache_hits_total``     -- counter
* ``notionsource.cache_misses_total``   -- counter
* ``notionsource.documents_total``      -- counter
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class MetricsHook(Protocol):
    """Protocol that any metrics backend must satisfy.

    All methods accept an optional *tags* dict of string keys and values.
    """

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Increment a counter metric."""
        ...

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Record a duration in milliseconds."""
        ...


class NoopMetricsHook:
    """Default metrics implementation that discards all data points."""

    __slots__ = ()

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass


def resolve_metrics(metrics: MetricsHook | None) -> MetricsHook:
    """Return *metrics*, or a :class:`NoopMetricsHook` when it is ``None``."""
    return metrics if metrics is not None else NoopMetricsHook()
