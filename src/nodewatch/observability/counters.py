"""In-process counters behind :meth:`NodeWatcher.get_metrics`.

Every component receives the same :class:`WatchCounters` instance.  Each
``bump`` updates the local counter and forwards the data point to the
configured :class:`~nodewatch.observability.metrics.MetricsHook`, so call
sites never need to talk to the hook directly.
"""

from __future__ import annotations

from typing import Any

from nodewatch.models import WatchMetrics

from .metrics import NoopMetricsHook

_COUNTERS: tuple[str, ...] = (
    "total_notifications",
    "dispatched_nodes",
    "missed_dispatches",
    "drains",
    "yields",
    "handler_failures",
    "retries",
    "stale_skips",
    "traversal_truncations",
    "regions_monitored",
    "regions_unmonitored",
    "evictions",
    "rescanned_nodes",
)

# Counter attribute -> emitted metric name.
_METRIC_NAMES: dict[str, str] = {
    "total_notifications": "nodewatch.notifications_total",
    **{name: f"nodewatch.{name}_total" for name in _COUNTERS[1:]},
}


class WatchCounters:
    """Monotonic counters plus the last-activity timestamp.

    Parameters
    ----------
    metrics:
        Backend receiving a copy of every data point.  ``None`` selects
        :class:`NoopMetricsHook`.
    """

    __slots__ = ("_hook", "_values", "last_activity_time")

    def __init__(self, metrics: Any | None = None) -> None:
        self._hook = metrics if metrics is not None else NoopMetricsHook()
        self._values: dict[str, int] = dict.fromkeys(_COUNTERS, 0)
        self.last_activity_time: float = 0.0

    @property
    def hook(self) -> Any:
        return self._hook

    def bump(self, name: str, value: int = 1, tags: dict[str, str] | None = None) -> None:
        """Increase counter *name* by *value* (which must be non-negative)."""
        if value < 0:
            raise ValueError(f"counters only grow, got {value} for {name}")
        self._values[name] += value
        self._hook.increment(_METRIC_NAMES[name], value, tags=tags)

    def touch(self, now: float) -> None:
        """Record activity at host time *now*."""
        self.last_activity_time = max(self.last_activity_time, now)

    def timing(self, name: str, ms: float, tags: dict[str, str] | None = None) -> None:
        self._hook.timing(name, ms, tags=tags)

    def gauge(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        self._hook.gauge(name, value, tags=tags)

    def __getitem__(self, name: str) -> int:
        return self._values[name]

    def snapshot(self, **gauges: int) -> WatchMetrics:
        """Build a :class:`WatchMetrics` from the counters and *gauges*."""
        return WatchMetrics(
            last_activity_time=self.last_activity_time,
            **self._values,
            **gauges,
        )
