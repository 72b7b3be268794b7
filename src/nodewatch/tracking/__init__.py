"""Processed-node tracking and memory governance.

Exports
-------
ProcessedSet
    Bounded LRU table of dispatched nodes.
MemoryGovernor
    Periodic TTL / disconnection sweep.
"""

from .governor import MemoryGovernor
from .processed import ProcessedSet

__all__ = [
    "MemoryGovernor",
    "ProcessedSet",
]
