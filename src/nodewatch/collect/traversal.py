"""Bounded iterative subtree traversal.

Subtree expansion never recurses: it walks an explicit stack with a hard
node-count ceiling, a depth ceiling, and an identity set that stops cycles
in malformed host trees.  Exceeding a guard truncates the walk and reports
why; it never raises and never hangs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from nodewatch.protocols import iter_children


@dataclass
class TraversalResult:
    """Nodes reached by :func:`walk_subtree`, in pre-order.

    Attributes
    ----------
    nodes:
        Visited nodes (the root first, when included).
    truncated:
        ``True`` if a guard stopped the walk early.
    reason:
        ``"max_nodes"``, ``"max_depth"`` or ``"cycle"`` when truncated.
    """

    nodes: list[Any] = field(default_factory=list)
    truncated: bool = False
    reason: str | None = None


def walk_subtree(
    root: Any,
    *,
    max_nodes: int,
    max_depth: int,
    include_root: bool = True,
) -> TraversalResult:
    """Collect *root*'s subtree with explicit guards.

    Parameters
    ----------
    root:
        Where to start.
    max_nodes:
        Stop after this many nodes have been collected.
    max_depth:
        Children deeper than this (root is depth 0) are not visited.
    include_root:
        Whether *root* itself is part of the result.
    """
    result = TraversalResult()
    seen: set[int] = {id(root)}
    stack: list[tuple[Any, int]] = [(root, 0)]

    while stack:
        node, depth = stack.pop()
        if node is not root or include_root:
            if len(result.nodes) >= max_nodes:
                result.truncated, result.reason = True, "max_nodes"
                break
            result.nodes.append(node)

        children = list(iter_children(node))
        if not children:
            continue
        if depth >= max_depth:
            result.truncated, result.reason = True, "max_depth"
            continue
        for child in reversed(children):
            key = id(child)
            if key in seen:
                result.truncated, result.reason = True, "cycle"
                continue
            seen.add(key)
            stack.append((child, depth + 1))

    return result
