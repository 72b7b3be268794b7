"""The deduplicating set of nodes awaiting dispatch."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any


class PendingSet:
    """Nodes awaiting the next drain, keyed by identity.

    Adding a node that is already pending is a no-op, so however many
    change events reference a node within one coalescing cycle, it is
    dispatched once.  :meth:`take` hands the current contents to a drain
    and leaves a fresh, empty set for mutations that arrive meanwhile.
    """

    __slots__ = ("_nodes",)

    def __init__(self) -> None:
        self._nodes: dict[int, Any] = {}

    def __len__(self) -> int:
        return len(self._nodes)

    def __bool__(self) -> bool:
        return bool(self._nodes)

    def __contains__(self, node: Any) -> bool:
        return id(node) in self._nodes

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._nodes.values()))

    def add(self, node: Any) -> bool:
        """Add *node*; returns ``True`` if it was not already pending."""
        key = id(node)
        if key in self._nodes:
            return False
        self._nodes[key] = node
        return True

    def discard(self, node: Any) -> None:
        self._nodes.pop(id(node), None)

    def take(self) -> list[Any]:
        """Remove and return every pending node."""
        nodes, self._nodes = self._nodes, {}
        return list(nodes.values())

    def clear(self) -> None:
        self._nodes = {}
