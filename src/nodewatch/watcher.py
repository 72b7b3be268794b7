"""The public watcher facade.

:class:`NodeWatcher` wires the collector, scheduler, dispatcher, region
monitor, reconciliation loop and memory governor around one tree root and
exposes the registration API.

Usage::

    from nodewatch import ManualHost, NodeWatcher
    from nodewatch.tree import Document

    doc = Document()
    host = ManualHost()
    with NodeWatcher(doc.root, host=host) as watcher:
        watcher.register(lambda node: print("post", node), selector=".post")
        watcher.start()
        doc.root.append(doc.create_element("div", {"class": "post"}))
        host.advance(0.1)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

from nodewatch.collect import MutationCollector, PendingSet, walk_subtree
from nodewatch.config import WatchConfig
from nodewatch.dispatch import (
    CallbackRegistry,
    Dispatcher,
    DrainScheduler,
    build_registration,
)
from nodewatch.errors import NodewatchDestroyedError
from nodewatch.host import AsyncioHost, HostScheduler
from nodewatch.models import CallbackRegistration, PriorityTier, WatchMetrics
from nodewatch.observability import WatchCounters, get_logger
from nodewatch.protocols import ChangeSource
from nodewatch.reconcile import EmbeddedRegionMonitor, ReconciliationLoop
from nodewatch.tracking import MemoryGovernor, ProcessedSet
from nodewatch.tree import TreeChangeSource, compile_selector

log = get_logger("nodewatch.watcher")


class NodeWatcher:
    """Watches a tree and dispatches matching nodes to registered handlers.

    Parameters
    ----------
    root:
        Root node of the primary tree.
    config:
        Pipeline configuration.  ``None`` uses ``WatchConfig()``.
    host:
        Host scheduler.  ``None`` uses :class:`AsyncioHost`, which requires a
        running event loop when the watcher is started.
    source_factory:
        Zero-argument callable returning a fresh :class:`ChangeSource`.
        Used for the root and for every embedded region.  Defaults to
        :class:`~nodewatch.tree.TreeChangeSource`.
    page_classifier:
        ``(root) -> Iterable[str]`` naming the page types currently present.
        Consulted on :meth:`start` and :meth:`refresh_page_types`.

    Raises
    ------
    NodewatchSelectorError
        If a selector in *config* does not parse.
    """

    def __init__(
        self,
        root: Any,
        *,
        config: WatchConfig | None = None,
        host: HostScheduler | None = None,
        source_factory: Callable[[], ChangeSource] | None = None,
        page_classifier: Callable[[Any], Iterable[str]] | None = None,
    ) -> None:
        self._config = config if config is not None else WatchConfig()
        for selector in (
            *self._config.dynamic_selectors,
            self._config.volatile_selector,
            self._config.interactive_selector,
        ):
            compile_selector(selector)

        self._root = root
        self._host: HostScheduler = host if host is not None else AsyncioHost()
        self._source_factory = source_factory or (lambda: TreeChangeSource(self._host))
        self._page_classifier = page_classifier

        self._counters = WatchCounters(self._config.metrics)
        self._pending = PendingSet()
        self._processed = ProcessedSet(self._config.processed_capacity, self._counters)
        self._registry = CallbackRegistry()
        self._dispatcher = Dispatcher(
            self._config,
            self._host,
            self._registry,
            self._processed,
            self._counters,
            root=root,
        )
        self._scheduler = DrainScheduler(
            self._config,
            self._host,
            self._pending,
            self._counters,
            self._dispatcher.dispatch,
        )
        self._collector = MutationCollector(
            self._config,
            self._host,
            self._pending,
            self._processed,
            self._counters,
            schedule_drain=self._scheduler.schedule_drain,
        )
        self._monitor = EmbeddedRegionMonitor(
            self._config,
            self._collector,
            self._counters,
            self._source_factory,
        )
        self._collector.set_region_sink(self._monitor.discover)
        self._reconciler = ReconciliationLoop(
            self._config,
            self._host,
            root,
            self._collector,
            self._processed,
            self._monitor,
            self._counters,
        )
        self._governor = MemoryGovernor(
            self._host, self._config, self._processed, self._counters
        )
        self._governor.add_prune_hook(self._monitor.prune)
        self._governor.add_prune_hook(self._reconciler.prune)

        self._source: ChangeSource | None = None
        self._started = False
        self._initial_scan_done = False
        self._paused = False
        self._destroyed = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def config(self) -> WatchConfig:
        return self._config

    @property
    def host(self) -> HostScheduler:
        return self._host

    @property
    def root(self) -> Any:
        return self._root

    @property
    def started(self) -> bool:
        return self._started

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def page_types(self) -> frozenset[str]:
        return self._dispatcher.page_types

    def _check_alive(self, operation: str) -> None:
        if self._destroyed:
            raise NodewatchDestroyedError(
                f"cannot {operation}: watcher has been destroyed",
                context={"operation": operation},
            )

    def _roots(self) -> list[Any]:
        return [self._root, *self._monitor.monitored_roots()]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Observe the root, run the initial full scan and start the timers.

        Idempotent.  The initial scan enqueues every existing node; it is
        delivered by the next drain.
        """
        self._check_alive("start")
        if self._started:
            return
        self._started = True
        self.refresh_page_types()

        self._source = self._source_factory()
        self._source.observe(self._root, self._collector.collect)

        self._monitor.scan(self._root)
        self._scan_all("initial")
        self._initial_scan_done = True

        self._reconciler.start()
        self._governor.start()
        log.info(
            "Watcher started",
            extra={
                "extra_fields": {
                    "op": "start",
                    "root": self._root,
                    "registrations": len(self._registry),
                    "pending": len(self._pending),
                }
            },
        )

    def destroy(self) -> None:
        """Tear everything down.  Idempotent.

        After this returns no handler is invoked again and no timer owned
        by the watcher remains scheduled.
        """
        if self._destroyed:
            return
        self._destroyed = True
        if self._source is not None:
            self._source.disconnect()
            self._source = None
        self._collector.close()
        self._monitor.close()
        self._reconciler.stop()
        self._reconciler.clear()
        self._governor.stop()
        self._scheduler.close()
        self._dispatcher.close()
        self._pending.clear()
        self._processed.clear()
        self._registry.clear()
        log.info("Watcher destroyed", extra={"extra_fields": {"op": "destroy"}})

    def pause(self) -> None:
        """Stop observing and stop the timers until :meth:`resume`.

        Handlers already queued on a tier still run.
        """
        self._check_alive("pause")
        if not self._started or self._paused:
            return
        self._paused = True
        if self._source is not None:
            self._source.disconnect()
        self._monitor.pause()
        self._reconciler.stop()
        self._governor.stop()
        self._scheduler.cancel()

    def resume(self) -> None:
        """Observe again and run a deep rescan for anything missed while paused."""
        self._check_alive("resume")
        if not self._paused:
            return
        self._paused = False
        if self._source is not None:
            self._source.observe(self._root, self._collector.collect)
        self._monitor.resume()
        self._reconciler.start()
        self._governor.start()
        self._reconciler.run_deep()
        if self._pending:
            self._scheduler.schedule_drain()

    def __enter__(self) -> NodeWatcher:
        return self

    def __exit__(self, *args: Any) -> None:
        self.destroy()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        handler: Callable[[Any], Any],
        *,
        selector: str | None = None,
        predicate: Callable[[Any], bool] | None = None,
        priority: PriorityTier | str = PriorityTier.NORMAL,
        page_types: Iterable[str] | None = None,
        dependencies: Iterable[Any] | None = None,
        retry: Any = None,
        id: str | None = None,
        match_descendants: bool = False,
    ) -> str:
        """Register *handler* and return the registration id.

        Parameters
        ----------
        handler:
            ``(node) -> None`` or ``(node) -> Awaitable``.
        selector:
            Nodes matching this selector are of interest.
        predicate:
            ``(node) -> bool``; combined with *selector* when both are given.
        priority:
            ``"immediate"`` (or ``"critical"``), ``"high"``, ``"normal"``
            or ``"low"``.
        page_types:
            Restrict the registration to these page types.
        dependencies:
            Selectors that must match somewhere under the root, or
            zero-argument callables that must return truthy.
        retry:
            ``True`` / an attempt count / a :class:`RetryPolicy` to retry a
            failing handler with exponential backoff.
        id:
            Explicit registration id; generated when omitted.
        match_descendants:
            Also match nodes that merely contain a selector match.

        Once the watcher has completed its initial scan, a selector-based
        registration is immediately dispatched to every existing match that
        has not been delivered to it yet.  Only ``"immediate"`` handlers see
        those matches before ``register`` returns; the other tiers receive
        them through the delayed queue after their tier delay (10 ms for the
        default ``"normal"``).

        Raises
        ------
        NodewatchValidationError
            Invalid arguments or a duplicate id.
        NodewatchSelectorError
            The selector does not parse.
        NodewatchDestroyedError
            The watcher has been destroyed.
        """
        self._check_alive("register")
        registration = build_registration(
            handler,
            selector=selector,
            predicate=predicate,
            priority=priority,
            page_types=page_types,
            dependencies=dependencies,
            retry=retry,
            id=id,
            match_descendants=match_descendants,
            default_max_attempts=self._config.default_max_attempts,
            now=self._host.time(),
        )
        self._registry.add(registration)
        log.debug(
            "Registered watcher",
            extra={
                "extra_fields": {
                    "op": "register",
                    "registration_id": registration.id,
                    "priority": registration.priority.value,
                    "selector": registration.selector,
                }
            },
        )
        if self._initial_scan_done and not self._paused and registration.selector is not None:
            self._catch_up(registration)
        return registration.id

    def unregister(self, registration_id: str) -> bool:
        """Remove a registration.  Dispatches already underway still complete."""
        if self._destroyed:
            return False
        return self._registry.remove(registration_id)

    def _catch_up(self, registration: CallbackRegistration) -> None:
        selector = registration.selector
        if selector is None:
            return
        candidates: list[Any] = []
        for root in self._roots():
            matches = root.query_all(selector)
            if root.matches(selector):
                matches = [root, *matches]
            candidates.extend(
                node
                for node in matches
                if registration.id not in self._processed.delivered(node)
            )
        if candidates:
            self._collector.enqueue(candidates, "catch_up")
            self._scheduler.force_immediate()

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def _scan_all(self, source: str) -> int:
        candidates: list[Any] = []
        for root in self._roots():
            result = walk_subtree(
                root,
                max_nodes=self._config.deep_rescan_max_nodes,
                max_depth=self._config.max_traversal_depth,
            )
            candidates.extend(node for node in result.nodes if node not in self._processed)
        return self._collector.enqueue(candidates, source)

    def force_scan(self, selector: str | None = None) -> int:
        """Dispatch unprocessed nodes right now.

        With a *selector*, only nodes matching it (in the root and every
        monitored region) are considered; otherwise the whole tree is.
        Returns the number of nodes enqueued.
        """
        self._check_alive("force_scan")
        if selector is None:
            added = self._scan_all("force")
        else:
            compile_selector(selector)
            candidates: list[Any] = []
            for root in self._roots():
                matches = root.query_all(selector)
                if root.matches(selector):
                    matches = [root, *matches]
                candidates.extend(node for node in matches if node not in self._processed)
            added = self._collector.enqueue(candidates, "force")
        self._scheduler.force_immediate()
        return added

    def refresh_page_types(self) -> frozenset[str]:
        """Re-run the page classifier.

        Registrations whose page types newly apply are caught up on the
        nodes that already exist.
        """
        self._check_alive("refresh_page_types")
        previous = self._dispatcher.page_types
        types = (
            frozenset(self._page_classifier(self._root))
            if self._page_classifier is not None
            else frozenset()
        )
        self._dispatcher.page_types = types
        gained = types - previous
        if gained and self._initial_scan_done and not self._paused:
            for registration in self._registry:
                if registration.page_types & gained:
                    self._catch_up(registration)
        return types

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def get_metrics(self) -> WatchMetrics:
        """Snapshot of counters and current gauges."""
        return self._counters.snapshot(
            pending_nodes=len(self._pending),
            processed_nodes=len(self._processed),
            registrations=len(self._registry),
        )
