"""Split a drain batch into fixed-size chunks.

The scheduler checks its time budget between chunks, so the chunk size
bounds how much work can run past the budget before the drain yields.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator
from typing import Any


def chunk_nodes(batch: deque[Any], size: int = 25) -> Iterator[list[Any]]:
    """Pop up to *size* nodes at a time from the left of *batch*.

    Consumes the deque lazily: nodes not yet yielded stay in *batch*, so a
    caller that stops iterating (to yield to the host) can resume later
    with a fresh generator over the same deque.

    Raises
    ------
    ValueError
        If *size* is less than 1.

    Examples
    --------
    >>> batch = deque(range(60))
    >>> [len(c) for c in chunk_nodes(batch)]
    [25, 25, 10]
    """
    if size < 1:
        raise ValueError(f"size must be >= 1, got {size}")

    while batch:
        yield [batch.popleft() for _ in range(min(size, len(batch)))]
