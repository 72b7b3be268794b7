"""Mutation collector: raw change events in, deduplicated pending work out.

Every batch from every change source (primary or embedded region) passes
through :meth:`MutationCollector.collect`.  Each event is expanded into the
set of nodes whose relevance may have changed:

* the event target, always, with its processed entry invalidated;
* INSERT -- the whole added subtree, skipping nodes already processed
  unless they are volatile containers;
* REMOVE -- the removed subtrees are forgotten (pending and processed);
* ATTRIBUTE -- visibility/classification attributes also re-expand the
  target's descendants (for ``style``, only if a visibility property
  actually changed);
* TEXT -- the nearest interactive ancestor and its siblings.

Reconciliation, region attachment and registration catch-up feed nodes
through :meth:`MutationCollector.enqueue` instead, which never invalidates.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from typing import Any

from nodewatch.config import WatchConfig
from nodewatch.host import HostScheduler
from nodewatch.models import ChangeEvent, ChangeKind
from nodewatch.observability import WatchCounters, get_logger
from nodewatch.tracking import ProcessedSet
from nodewatch.utils.style import style_change_affects

from .pending import PendingSet
from .traversal import walk_subtree

log = get_logger("nodewatch.collector")


class MutationCollector:
    """Expands change events into the shared :class:`PendingSet`.

    Parameters
    ----------
    config:
        Watcher configuration (markers, traversal guards).
    host:
        Supplies the clock for activity timestamps.
    pending:
        Work set consumed by the scheduler.
    processed:
        Dispatch history consulted (and invalidated) during expansion.
    counters:
        Shared watcher counters.
    schedule_drain:
        Called whenever new pending work exists.
    """

    def __init__(
        self,
        config: WatchConfig,
        host: HostScheduler,
        pending: PendingSet,
        processed: ProcessedSet,
        counters: WatchCounters,
        *,
        schedule_drain: Callable[[], None],
    ) -> None:
        self._config = config
        self._host = host
        self._pending = pending
        self._processed = processed
        self._counters = counters
        self._schedule_drain = schedule_drain
        self._discover_region: Callable[[Any], None] | None = None
        self._closed = False

    def set_region_sink(self, sink: Callable[[Any], None] | None) -> None:
        """Route nodes hosting an embedded region to *sink* as they are found."""
        self._discover_region = sink

    def close(self) -> None:
        """Ignore every batch from now on."""
        self._closed = True

    # -- Entry points -------------------------------------------------------

    def collect(self, batch: Sequence[ChangeEvent]) -> None:
        """Fold one batch of raw change events into the pending set."""
        if self._closed or not batch:
            return
        self._counters.bump("total_notifications", len(batch))
        self._counters.touch(self._host.time())

        for event in batch:
            if self._is_own_mutation(event):
                continue
            target = event.target

            if event.kind is ChangeKind.REMOVE:
                for removed in event.removed_nodes:
                    self._forget_subtree(removed)

            self._add_changed(target)

            if event.kind is ChangeKind.INSERT:
                for added in event.added_nodes:
                    self._expand(added, include_root=True)
            elif event.kind is ChangeKind.ATTRIBUTE:
                if self._affects_visibility(event):
                    self._expand(target, include_root=False)
            elif event.kind is ChangeKind.TEXT:
                self._add_text_context(target)

        if self._pending:
            self._schedule_drain()

    def enqueue(self, nodes: Iterable[Any], source: str) -> int:
        """Add *nodes* found by a rescan or catch-up; returns how many were new."""
        if self._closed:
            return 0
        added = sum(1 for node in nodes if self._pending.add(node))
        if added:
            self._counters.bump("rescanned_nodes", added, tags={"source": source})
            self._counters.touch(self._host.time())
            self._schedule_drain()
        return added

    # -- Expansion ----------------------------------------------------------

    def _is_own_mutation(self, event: ChangeEvent) -> bool:
        origin = self._config.origin_attribute
        if event.kind is ChangeKind.ATTRIBUTE and event.attribute_name == origin:
            return True
        get_attribute = getattr(event.target, "get_attribute", None)
        return get_attribute is not None and get_attribute(origin) == self._config.origin_value

    def _add_changed(self, node: Any) -> None:
        self._processed.discard(node)
        self._pending.add(node)

    def _is_volatile(self, node: Any) -> bool:
        return node.matches(self._config.volatile_selector)

    def _expand(self, root: Any, *, include_root: bool) -> None:
        result = walk_subtree(
            root,
            max_nodes=self._config.max_traversal_nodes,
            max_depth=self._config.max_traversal_depth,
            include_root=include_root,
        )
        if result.truncated:
            self._counters.bump("traversal_truncations", tags={"reason": result.reason or ""})
            log.warning(
                "Subtree expansion truncated",
                extra={
                    "extra_fields": {
                        "op": "expand",
                        "root": root,
                        "reason": result.reason,
                        "collected": len(result.nodes),
                    }
                },
            )

        for node in result.nodes:
            if self._discover_region is not None and getattr(node, "region", None) is not None:
                self._discover_region(node)
            if node in self._processed:
                if not self._is_volatile(node):
                    continue
                self._processed.discard(node)
            self._pending.add(node)

    def _forget_subtree(self, root: Any) -> None:
        result = walk_subtree(
            root,
            max_nodes=self._config.max_traversal_nodes,
            max_depth=self._config.max_traversal_depth,
        )
        for node in result.nodes:
            self._pending.discard(node)
            self._processed.discard(node)

    def _affects_visibility(self, event: ChangeEvent) -> bool:
        name = event.attribute_name
        if name is None or name not in self._config.visibility_attributes:
            return False
        if name == "style":
            return style_change_affects(
                event.old_value,
                event.target.get_attribute("style"),
                self._config.visibility_style_properties,
            )
        return True

    def _add_text_context(self, target: Any) -> None:
        anchor = target.closest(self._config.interactive_selector)
        if anchor is None:
            return
        self._add_changed(anchor)
        parent = anchor.parent
        if parent is None:
            return
        for sibling in parent.children:
            if sibling is not anchor:
                self._add_changed(sibling)
