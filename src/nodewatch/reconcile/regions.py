"""Monitoring of embedded regions the primary change source cannot see.

Embedded documents and isolated sub-trees are separate monitoring roots.
For each one found in the tree the monitor:

* waits for it to load, if it has not yet;
* asks for its content root (which may be refused);
* attaches a secondary change source that forwards batches to the
  collector, enqueues the content already there, and looks for nested
  regions inside it.

Attachment failures never propagate.  They are logged at debug level,
counted, and the region is remembered so the deep rescan can try again.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from nodewatch.collect import MutationCollector, walk_subtree
from nodewatch.config import WatchConfig
from nodewatch.observability import WatchCounters, get_logger
from nodewatch.protocols import ChangeSource

log = get_logger("nodewatch.regions")


@dataclass
class _Attachment:
    region: Any
    root: Any
    source: ChangeSource


class EmbeddedRegionMonitor:
    """Tracks embedded regions and their secondary change sources.

    Parameters
    ----------
    config:
        Traversal guards used when enqueueing region content.
    collector:
        Receives region batches and existing content.
    counters:
        Shared watcher counters.
    source_factory:
        Zero-argument callable returning a fresh :class:`ChangeSource`.
    """

    def __init__(
        self,
        config: WatchConfig,
        collector: MutationCollector,
        counters: WatchCounters,
        source_factory: Callable[[], ChangeSource],
    ) -> None:
        self._config = config
        self._collector = collector
        self._counters = counters
        self._source_factory = source_factory
        self._attached: dict[int, _Attachment] = {}
        self._awaiting_load: dict[int, tuple[Any, Callable[[], None]]] = {}
        self._failed: dict[int, Any] = {}
        self._suspended: list[Any] = []
        self._paused = False
        self._closed = False

    # -- Introspection ------------------------------------------------------

    def monitored_roots(self) -> list[Any]:
        """Content roots of every attached region."""
        return [attachment.root for attachment in self._attached.values()]

    def is_monitored(self, region: Any) -> bool:
        return id(region) in self._attached

    @property
    def failed_regions(self) -> list[Any]:
        return list(self._failed.values())

    @property
    def awaiting_load(self) -> int:
        return len(self._awaiting_load)

    # -- Discovery ----------------------------------------------------------

    def discover(self, node: Any) -> None:
        """Handle *node* if it hosts a region not yet known to the monitor."""
        region = getattr(node, "region", None)
        if region is None or self._closed:
            return
        key = id(region)
        if key in self._attached or key in self._awaiting_load or key in self._failed:
            return
        if region.loaded:
            self.attach(region)
            return
        unsubscribe = region.on_load(self._on_loaded)
        self._awaiting_load[key] = (region, unsubscribe)

    def scan(self, root: Any) -> int:
        """Discover every region hosted at or below *root*.

        Returns the number of region hosts found.
        """
        result = walk_subtree(
            root,
            max_nodes=self._config.deep_rescan_max_nodes,
            max_depth=self._config.max_traversal_depth,
        )
        found = 0
        for node in result.nodes:
            if getattr(node, "region", None) is not None:
                found += 1
                self.discover(node)
        return found

    def _on_loaded(self, region: Any) -> None:
        self._awaiting_load.pop(id(region), None)
        if self._closed:
            return
        if self._paused:
            self._suspended.append(region)
            return
        self.attach(region)

    # -- Attachment ---------------------------------------------------------

    def attach(self, region: Any) -> bool:
        """Start monitoring *region*.  Returns ``True`` once attached.

        Never raises: failures leave the region unmonitored and queued for
        :meth:`retry_failed`.
        """
        key = id(region)
        if self._closed or key in self._attached:
            return False
        if self._paused:
            self._suspended.append(region)
            return False

        source: ChangeSource | None = None
        try:
            root = region.content_root()
            if root is None:
                return False
            source = self._source_factory()
            source.observe(root, self._collector.collect)
        except Exception as exc:
            if source is not None:
                source.disconnect()
            self._failed[key] = region
            self._counters.bump("regions_unmonitored")
            log.debug(
                "Embedded region left unmonitored",
                extra={
                    "extra_fields": {
                        "op": "attach_region",
                        "region_kind": getattr(region, "kind", None),
                        "host": getattr(region, "host", None),
                        "error": repr(exc),
                    }
                },
            )
            return False

        self._failed.pop(key, None)
        self._attached[key] = _Attachment(region, root, source)
        self._counters.bump("regions_monitored")

        content = walk_subtree(
            root,
            max_nodes=self._config.deep_rescan_max_nodes,
            max_depth=self._config.max_traversal_depth,
        )
        self._collector.enqueue(content.nodes, "region")
        self.scan(root)
        return True

    def retry_failed(self) -> int:
        """Try every previously failed region again; returns how many attached."""
        attached = 0
        for key, region in list(self._failed.items()):
            del self._failed[key]
            if not self._host_connected(region):
                continue
            if self.attach(region):
                attached += 1
        return attached

    def detach(self, region: Any) -> bool:
        attachment = self._attached.pop(id(region), None)
        if attachment is None:
            return False
        attachment.source.disconnect()
        return True

    def detach_all(self) -> None:
        for attachment in self._attached.values():
            attachment.source.disconnect()
        self._attached.clear()

    # -- Lifecycle ----------------------------------------------------------

    def pause(self) -> None:
        """Disconnect every region source; :meth:`resume` re-attaches them."""
        if self._paused:
            return
        self._paused = True
        self._suspended.extend(attachment.region for attachment in self._attached.values())
        self.detach_all()

    def resume(self) -> None:
        if not self._paused:
            return
        self._paused = False
        suspended, self._suspended = self._suspended, []
        for region in suspended:
            self.attach(region)

    def prune(self) -> int:
        """Forget regions whose host node has left the tree."""
        dropped = 0
        for key, attachment in list(self._attached.items()):
            if not self._host_connected(attachment.region):
                attachment.source.disconnect()
                del self._attached[key]
                dropped += 1
        for key, (region, unsubscribe) in list(self._awaiting_load.items()):
            if not self._host_connected(region):
                unsubscribe()
                del self._awaiting_load[key]
                dropped += 1
        for key, region in list(self._failed.items()):
            if not self._host_connected(region):
                del self._failed[key]
                dropped += 1
        return dropped

    def close(self) -> None:
        """Detach everything and stop listening for loads."""
        self._closed = True
        self.detach_all()
        for _, unsubscribe in self._awaiting_load.values():
            unsubscribe()
        self._awaiting_load.clear()
        self._failed.clear()
        self._suspended.clear()

    @staticmethod
    def _host_connected(region: Any) -> bool:
        host = getattr(region, "host", None)
        return host is None or host.is_connected
