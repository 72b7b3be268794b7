"""Periodic memory sweep.

The governor keeps long-running watchers from accumulating state for nodes
that left the tree long ago.  Every ``governor_interval`` seconds it:

1. drops processed entries whose node has been out of the tree for
   ``processed_ttl`` seconds (entries for attached nodes never age out, so
   the deep rescan does not re-deliver unchanged nodes);
2. runs each registered prune hook (region monitor, reconciliation
   deferral list), which discard their own references to dead nodes;
3. warns when the processed table is close to its capacity.
"""

from __future__ import annotations

from collections.abc import Callable

from nodewatch.config import WatchConfig
from nodewatch.host import HostScheduler, TimerHandle
from nodewatch.observability import WatchCounters, get_logger

from .processed import ProcessedSet

log = get_logger("nodewatch.governor")

# Fraction of capacity at which the governor starts warning.
_PRESSURE_RATIO = 0.9


class MemoryGovernor:
    """Bounds the processed table and prunes dead references.

    Parameters
    ----------
    host:
        Scheduler for the periodic sweep.
    config:
        Supplies ``processed_ttl`` and ``governor_interval``.
    processed:
        The table to sweep.
    counters:
        Shared watcher counters.
    """

    def __init__(
        self,
        host: HostScheduler,
        config: WatchConfig,
        processed: ProcessedSet,
        counters: WatchCounters,
    ) -> None:
        self._host = host
        self._config = config
        self._processed = processed
        self._counters = counters
        self._prune_hooks: list[Callable[[], int]] = []
        self._timer: TimerHandle | None = None

    def add_prune_hook(self, hook: Callable[[], int]) -> None:
        """Register *hook*; it returns how many references it dropped."""
        self._prune_hooks.append(hook)

    @property
    def running(self) -> bool:
        return self._timer is not None

    def start(self) -> None:
        if self._timer is None:
            self._timer = self._host.call_later(self._config.governor_interval, self._tick)

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _tick(self) -> None:
        self._timer = None
        self.run_once()
        self.start()

    def run_once(self) -> int:
        """Sweep now.  Returns the total number of references dropped."""
        swept = self._processed.sweep(self._host.time(), self._config.processed_ttl)
        pruned = sum(hook() for hook in self._prune_hooks)

        size = len(self._processed)
        self._counters.gauge("nodewatch.processed_nodes", size)
        if size >= self._processed.capacity * _PRESSURE_RATIO:
            log.warning(
                "Processed-node table near capacity",
                extra={
                    "extra_fields": {
                        "op": "governor_sweep",
                        "size": size,
                        "capacity": self._processed.capacity,
                    }
                },
            )
        if swept or pruned:
            log.debug(
                "Governor sweep",
                extra={"extra_fields": {"op": "governor_sweep", "swept": swept, "pruned": pruned}},
            )
        return swept + pruned
