"""Metrics hook protocol and no-op default implementation.

nodewatch keeps its own in-process counters (see
:class:`~nodewatch.observability.counters.WatchCounters`) and additionally
forwards every data point to a :class:`MetricsHook`.  By default a
:class:`NoopMetricsHook` is used.  Supply any object satisfying the protocol
to route the data to StatsD, Prometheus, or a test recorder.

Emitted metric names:

* ``nodewatch.notifications_total``        -- counter
* ``nodewatch.dispatched_nodes_total``     -- counter
* ``nodewatch.missed_dispatches_total``    -- counter
* ``nodewatch.handler_failures_total``     -- counter (tag ``tier``)
* ``nodewatch.retries_total``              -- counter (tag ``tier``)
* ``nodewatch.stale_skips_total``          -- counter
* ``nodewatch.traversal_truncations_total``-- counter
* ``nodewatch.rescanned_nodes_total``      -- counter (tag ``source``)
* ``nodewatch.regions_monitored_total``    -- counter
* ``nodewatch.regions_unmonitored_total``  -- counter
* ``nodewatch.evictions_total``            -- counter (tag ``reason``)
* ``nodewatch.drains_total``               -- counter
* ``nodewatch.yields_total``               -- counter
* ``nodewatch.drain_duration_ms``          -- timing
* ``nodewatch.pending_nodes``              -- gauge
* ``nodewatch.processed_nodes``            -- gauge
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class MetricsHook(Protocol):
    """Protocol that any metrics backend must satisfy.

    *tags* are string key/value pairs; backends translate them into their
    own labelling scheme.
    """

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Increment counter *name* by *value*."""
        ...

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Record a duration of *ms* milliseconds."""
        ...

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Set gauge *name* to *value*."""
        ...


class NoopMetricsHook:
    """Metrics backend that discards every data point."""

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

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass
