"""Delayed-task queue for the HIGH, NORMAL and LOW tiers.

Tasks are kept in a heap ordered by ``(due time, tier rank, sequence)``
and fired by a single host timer armed for the earliest due task.  Because
due times come from the host clock, a virtual clock makes the interleaving
of tiers fully deterministic.

While any node's IMMEDIATE tier is open (awaitable results or retries
still pending) the queue is *held*: due tasks wait until every hold has
been released, so later tiers never overlap with IMMEDIATE work.
"""

from __future__ import annotations

import heapq
import itertools
from collections.abc import Callable
from typing import Any

from nodewatch.host import HostScheduler, TimerHandle
from nodewatch.models import PriorityTier


class DelayedTaskQueue:
    """Host-clock task heap behind one timer.

    Parameters
    ----------
    host:
        Supplies the clock and the timer.
    """

    def __init__(self, host: HostScheduler) -> None:
        self._host = host
        self._heap: list[tuple[float, int, int, Callable[[], Any]]] = []
        self._seq = itertools.count()
        self._timer: TimerHandle | None = None
        self._timer_due: float | None = None
        self._holds = 0
        self._closed = False

    def __len__(self) -> int:
        return len(self._heap)

    @property
    def pending(self) -> int:
        return len(self._heap)

    @property
    def held(self) -> bool:
        return self._holds > 0

    def schedule(self, tier: PriorityTier, delay: float, callback: Callable[[], Any]) -> None:
        """Run *callback* no sooner than *delay* seconds from now."""
        if self._closed:
            return
        due = self._host.time() + max(0.0, delay)
        heapq.heappush(self._heap, (due, tier.rank, next(self._seq), callback))
        self._arm()

    def hold(self) -> None:
        self._holds += 1

    def release(self) -> None:
        if self._holds == 0:
            return
        self._holds -= 1
        if self._holds == 0:
            self._arm()

    def cancel_all(self) -> None:
        """Drop every task and the timer; the queue accepts nothing further."""
        self._closed = True
        self._heap.clear()
        self._disarm()

    # -- Internals ----------------------------------------------------------

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._timer_due = None

    def _arm(self) -> None:
        if self._closed or self._holds or not self._heap:
            return
        due = self._heap[0][0]
        if self._timer is not None and self._timer_due is not None and self._timer_due <= due:
            return
        self._disarm()
        self._timer_due = due
        self._timer = self._host.call_later(due - self._host.time(), self._fire)

    def _fire(self) -> None:
        self._timer = None
        self._timer_due = None
        now = self._host.time()
        while self._heap and not self._holds and not self._closed:
            due, _, _, callback = self._heap[0]
            if due > now:
                break
            heapq.heappop(self._heap)
            callback()
        self._arm()
