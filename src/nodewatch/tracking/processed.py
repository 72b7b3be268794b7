"""Bounded table of already-dispatched nodes.

Each entry is keyed by node identity and records *which* registrations
have already been delivered the node in its current state, plus the host
time of the last dispatch.  The table is an LRU of fixed capacity: when it
overflows, the least recently dispatched entry is dropped.  Entries whose
node is still in the tree never expire by age; the periodic sweep only
forgets nodes that have been detached for longer than a grace period.

Losing an entry (eviction, sweep, invalidation) only makes the node
eligible for dispatch again, so the table can never cause a missed
delivery, at most a redundant one.
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Iterable
from typing import Any

from nodewatch.observability import WatchCounters


class _Entry:
    __slots__ = ("delivered", "detached_at", "node", "stamp")

    def __init__(self, node: Any, stamp: float) -> None:
        self.node = node
        self.stamp = stamp
        self.detached_at: float | None = None
        self.delivered: set[str] = set()


class ProcessedSet:
    """LRU set of processed nodes with per-node delivered registration ids.

    Parameters
    ----------
    capacity:
        Maximum number of entries.
    counters:
        Receives ``evictions`` increments.
    """

    __slots__ = ("_capacity", "_counters", "_entries")

    def __init__(self, capacity: int, counters: WatchCounters | None = None) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._counters = counters
        self._entries: OrderedDict[int, _Entry] = OrderedDict()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, node: Any) -> bool:
        return id(node) in self._entries

    def delivered(self, node: Any) -> frozenset[str]:
        """Registration ids already delivered *node* in its current state."""
        entry = self._entries.get(id(node))
        return frozenset(entry.delivered) if entry is not None else frozenset()

    def mark(self, node: Any, registration_ids: Iterable[str], now: float) -> None:
        """Record that *node* was dispatched to *registration_ids* at *now*."""
        key = id(node)
        entry = self._entries.get(key)
        if entry is None:
            entry = _Entry(node, now)
            self._entries[key] = entry
        else:
            entry.stamp = now
            entry.detached_at = None
            self._entries.move_to_end(key)
        entry.delivered.update(registration_ids)

        while len(self._entries) > self._capacity:
            self._entries.popitem(last=False)
            if self._counters is not None:
                self._counters.bump("evictions", tags={"reason": "capacity"})

    def discard(self, node: Any) -> bool:
        """Forget *node*; returns ``True`` if it was present."""
        return self._entries.pop(id(node), None) is not None

    def sweep(self, now: float, grace: float) -> int:
        """Drop entries whose node has been out of the tree for *grace* seconds.

        Detachment is timed from the first sweep that sees the node
        disconnected; a node that is back in the tree by the next sweep keeps
        its entry.  Connected entries are left alone regardless of age.

        Returns the number of entries removed.
        """
        stale = []
        for key, entry in self._entries.items():
            if entry.node.is_connected:
                entry.detached_at = None
                continue
            if entry.detached_at is None:
                entry.detached_at = now
            if now - entry.detached_at >= grace:
                stale.append(key)
        for key in stale:
            del self._entries[key]
        if stale and self._counters is not None:
            self._counters.bump("evictions", len(stale), tags={"reason": "sweep"})
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()
