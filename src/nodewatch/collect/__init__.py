"""Change collection.

Exports
-------
MutationCollector
    Expands raw change events into pending work.
PendingSet
    Deduplicating set of nodes awaiting dispatch.
walk_subtree
    Bounded iterative traversal used by every expansion.
"""

from .collector import MutationCollector
from .pending import PendingSet
from .traversal import TraversalResult, walk_subtree

__all__ = [
    "MutationCollector",
    "PendingSet",
    "TraversalResult",
    "walk_subtree",
]
