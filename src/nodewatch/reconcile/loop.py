"""Periodic rescans that catch whatever the change sources missed.

Two passes run on host timers:

* **quick** -- every ``quick_rescan_interval`` seconds, but only when at
  least ``quick_rescan_min_gap`` seconds have passed since the last quick
  pass and there has been activity since then.  Queries the dynamic
  selectors across the root and every monitored region.
* **deep** -- every ``deep_rescan_interval`` seconds.  A bounded full
  traversal of the root and every monitored region that also retries
  failed region attachments.  Invisible nodes are deferred to the next
  deep pass instead of being enqueued.

Both passes only enqueue nodes that are not yet processed; delivery still
goes through the normal drain.
"""

from __future__ import annotations

from typing import Any

from nodewatch.collect import MutationCollector, walk_subtree
from nodewatch.config import WatchConfig
from nodewatch.host import HostScheduler, TimerHandle
from nodewatch.observability import WatchCounters, get_logger
from nodewatch.tracking import ProcessedSet

from .regions import EmbeddedRegionMonitor

log = get_logger("nodewatch.reconcile")


class ReconciliationLoop:
    """Quick and deep rescans on host timers.

    Parameters
    ----------
    config:
        Intervals, selectors and traversal guards.
    host:
        Clock and timers.
    root:
        The primary tree root.
    collector:
        Receives rescanned nodes through :meth:`MutationCollector.enqueue`.
    processed:
        Consulted so that only unprocessed nodes are enqueued.
    monitor:
        Supplies region roots and retries failed attachments.
    counters:
        Shared watcher counters.
    """

    def __init__(
        self,
        config: WatchConfig,
        host: HostScheduler,
        root: Any,
        collector: MutationCollector,
        processed: ProcessedSet,
        monitor: EmbeddedRegionMonitor,
        counters: WatchCounters,
    ) -> None:
        self._config = config
        self._host = host
        self._root = root
        self._collector = collector
        self._processed = processed
        self._monitor = monitor
        self._counters = counters
        self._quick_timer: TimerHandle | None = None
        self._deep_timer: TimerHandle | None = None
        self._last_quick: float | None = None
        self._deferred: dict[int, Any] = {}

    @property
    def running(self) -> bool:
        return self._quick_timer is not None or self._deep_timer is not None

    @property
    def deferred(self) -> list[Any]:
        """Invisible nodes waiting for the next deep rescan."""
        return list(self._deferred.values())

    def _roots(self) -> list[Any]:
        return [self._root, *self._monitor.monitored_roots()]

    # -- Timers -------------------------------------------------------------

    def start(self) -> None:
        if self._quick_timer is None:
            self._quick_timer = self._host.call_later(
                self._config.quick_rescan_interval, self._quick_tick
            )
        if self._deep_timer is None:
            self._deep_timer = self._host.call_later(
                self._config.deep_rescan_interval, self._deep_tick
            )

    def stop(self) -> None:
        for timer in (self._quick_timer, self._deep_timer):
            if timer is not None:
                timer.cancel()
        self._quick_timer = None
        self._deep_timer = None

    def _quick_tick(self) -> None:
        self._quick_timer = None
        self.run_quick()
        self._quick_timer = self._host.call_later(
            self._config.quick_rescan_interval, self._quick_tick
        )

    def _deep_tick(self) -> None:
        self._deep_timer = None
        self.run_deep()
        self._deep_timer = self._host.call_later(
            self._config.deep_rescan_interval, self._deep_tick
        )

    # -- Passes -------------------------------------------------------------

    def run_quick(self, *, force: bool = False) -> int:
        """Enqueue unprocessed nodes matching the dynamic selectors.

        Skipped (returning 0) when the last quick pass was too recent or
        nothing has happened since, unless *force* is set.
        """
        now = self._host.time()
        last = self._last_quick
        if not force and last is not None:
            if now - last < self._config.quick_rescan_min_gap:
                return 0
            if self._counters.last_activity_time <= last:
                return 0
        self._last_quick = now

        candidates: list[Any] = []
        seen: set[int] = set()
        for root in self._roots():
            for selector in self._config.dynamic_selectors:
                matches = root.query_all(selector)
                if root.matches(selector):
                    matches = [root, *matches]
                for node in matches:
                    if id(node) in seen or node in self._processed:
                        continue
                    seen.add(id(node))
                    candidates.append(node)

        added = self._collector.enqueue(candidates, "quick")
        if added:
            log.debug(
                "Quick rescan found unprocessed nodes",
                extra={"extra_fields": {"op": "quick_rescan", "enqueued": added}},
            )
        return added

    def run_deep(self) -> int:
        """Full bounded traversal of every monitoring root."""
        self._monitor.retry_failed()

        candidates: list[Any] = []
        for root in self._roots():
            result = walk_subtree(
                root,
                max_nodes=self._config.deep_rescan_max_nodes,
                max_depth=self._config.max_traversal_depth,
            )
            if result.truncated:
                self._counters.bump("traversal_truncations", tags={"reason": result.reason or ""})
                log.warning(
                    "Deep rescan truncated",
                    extra={
                        "extra_fields": {
                            "op": "deep_rescan",
                            "root": root,
                            "reason": result.reason,
                            "visited": len(result.nodes),
                        }
                    },
                )
            for node in result.nodes:
                if getattr(node, "region", None) is not None:
                    self._monitor.discover(node)
                if node in self._processed:
                    self._deferred.pop(id(node), None)
                    continue
                if not node.is_visible():
                    self._deferred[id(node)] = node
                    continue
                self._deferred.pop(id(node), None)
                candidates.append(node)

        self.prune()
        added = self._collector.enqueue(candidates, "deep")
        log.debug(
            "Deep rescan finished",
            extra={
                "extra_fields": {
                    "op": "deep_rescan",
                    "enqueued": added,
                    "deferred": len(self._deferred),
                }
            },
        )
        return added

    def prune(self) -> int:
        """Drop deferred nodes that have left the tree."""
        gone = [key for key, node in self._deferred.items() if not node.is_connected]
        for key in gone:
            del self._deferred[key]
        return len(gone)

    def clear(self) -> None:
        self._deferred.clear()
        self._last_quick = None
