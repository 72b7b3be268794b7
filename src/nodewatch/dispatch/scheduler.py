"""Drain scheduling with a per-frame time budget.

A drain takes the whole :class:`PendingSet` into a private batch and
dispatches it in chunks of ``chunk_size``.  After each chunk the elapsed
host time is compared against ``frame_budget_ms``; on overrun the drain
yields one host tick and resumes with the remaining chunks.

Exactly one drain is in progress at a time.  Work that arrives while a
batch is being processed stays in the (fresh) pending set and gets its
own drain once the current batch completes.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from typing import Any

from nodewatch.config import WatchConfig
from nodewatch.collect.pending import PendingSet
from nodewatch.host import HostScheduler, TimerHandle
from nodewatch.observability import WatchCounters, get_logger
from nodewatch.utils.chunk import chunk_nodes

log = get_logger("nodewatch.scheduler")


class DrainScheduler:
    """Coalesces pending nodes into budgeted, chunked drains.

    Parameters
    ----------
    config:
        Supplies ``chunk_size`` and ``frame_budget_ms``.
    host:
        Clock and the next-tick primitive.
    pending:
        The set filled by the collector.
    counters:
        Shared watcher counters.
    dispatch:
        Called once per node in the batch.
    """

    def __init__(
        self,
        config: WatchConfig,
        host: HostScheduler,
        pending: PendingSet,
        counters: WatchCounters,
        dispatch: Callable[[Any], Any],
    ) -> None:
        self._config = config
        self._host = host
        self._pending = pending
        self._counters = counters
        self._dispatch = dispatch
        self._handle: TimerHandle | None = None
        self._batch: deque[Any] | None = None
        self._batch_started = 0.0
        self._running = False
        self._rerun = False
        self._closed = False

    @property
    def scheduled(self) -> bool:
        """A drain (or the continuation of one) is waiting for its tick."""
        return self._handle is not None

    @property
    def in_progress(self) -> bool:
        """A batch has been taken and not yet fully dispatched."""
        return self._batch is not None

    # -- Public surface -----------------------------------------------------

    def schedule_drain(self) -> None:
        """Make sure pending work is drained at the next host tick.

        Idempotent.  While a batch is in progress nothing is scheduled; the
        follow-up drain is arranged when that batch completes.
        """
        if self._closed or self._handle is not None:
            return
        if self._running or self._batch is not None:
            return
        self._handle = self._host.call_soon(self._on_tick)

    def force_immediate(self) -> None:
        """Drain everything now, inline.

        Cancels the scheduled tick, finishes a yielded batch without budget
        checks, then drains the pending set until it is empty.  Called from
        inside a handler that runs during a drain, it only requests a rerun
        once the current batch is done.
        """
        if self._closed:
            return
        if self._running:
            self._rerun = True
            return
        self._cancel_tick()
        if self._batch is not None:
            self._process(budgeted=False)
        while self._pending and not self._closed:
            self._begin()
            self._process(budgeted=False)
        self._cancel_tick()

    def cancel(self) -> None:
        """Cancel the scheduled tick; an unfinished batch goes back to pending."""
        self._cancel_tick()
        if self._batch is not None:
            for node in self._batch:
                self._pending.add(node)
            self._batch = None

    def close(self) -> None:
        """Cancel everything and refuse further drains."""
        self._closed = True
        self._cancel_tick()
        self._batch = None
        self._rerun = False

    # -- Internals ----------------------------------------------------------

    def _cancel_tick(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _on_tick(self) -> None:
        self._handle = None
        if self._closed:
            return
        if self._batch is None and not self._begin():
            return
        self._process(budgeted=True)

    def _begin(self) -> bool:
        nodes = self._pending.take()
        if not nodes:
            return False
        self._batch = deque(nodes)
        self._batch_started = self._host.time()
        self._counters.bump("drains")
        self._counters.gauge("nodewatch.pending_nodes", len(nodes))
        return True

    def _process(self, *, budgeted: bool) -> None:
        batch = self._batch
        if batch is None:
            return
        frame_start = self._host.time()
        self._running = True
        try:
            for chunk in chunk_nodes(batch, self._config.chunk_size):
                for node in chunk:
                    self._dispatch(node)
                if self._closed:
                    return
                if not budgeted or not batch:
                    continue
                elapsed_ms = (self._host.time() - frame_start) * 1000.0
                if elapsed_ms > self._config.frame_budget_ms:
                    self._counters.bump("yields")
                    log.debug(
                        "Frame budget exceeded; yielding",
                        extra={
                            "extra_fields": {
                                "op": "drain",
                                "elapsed_ms": round(elapsed_ms, 3),
                                "remaining": len(batch),
                            }
                        },
                    )
                    self._handle = self._host.call_soon(self._on_tick)
                    return
        finally:
            self._running = False
        self._finish()

    def _finish(self) -> None:
        self._batch = None
        duration_ms = (self._host.time() - self._batch_started) * 1000.0
        self._counters.timing("nodewatch.drain_duration_ms", duration_ms)
        if self._rerun:
            self._rerun = False
            self.force_immediate()
        elif self._pending:
            self.schedule_drain()
