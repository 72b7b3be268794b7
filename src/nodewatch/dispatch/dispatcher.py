"""Per-node dispatch across the four priority tiers.

:meth:`Dispatcher.dispatch` takes one node from a drain batch and:

1. skips it if it has left the tree;
2. finds the registrations that apply to it and have not yet been
   delivered its current state;
3. runs the IMMEDIATE handlers inline.  Awaitable results and retries of
   failed IMMEDIATE handlers keep the node's IMMEDIATE tier open and hold
   the delayed queue until they settle;
4. once the IMMEDIATE tier has completed, hands HIGH, NORMAL and LOW to
   the :class:`DelayedTaskQueue` with the configured tier delays, measured
   from that moment;
5. marks the node processed for every matched registration.

Handler failures are isolated per handler.  A failing handler with retry
enabled is re-run after an exponential backoff; once abandoned it counts
one missed dispatch and is reported to ``WatchConfig.on_handler_error``.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable
from typing import Any

from nodewatch.config import WatchConfig
from nodewatch.errors import NodewatchHandlerError, NodewatchRetryExhaustedError
from nodewatch.host import HostScheduler, TimerHandle
from nodewatch.models import CallbackRegistration, PriorityTier
from nodewatch.observability import WatchCounters, get_logger
from nodewatch.tracking import ProcessedSet

from .delayed import DelayedTaskQueue
from .registry import CallbackRegistry
from .retries import compute_backoff, should_retry

log = get_logger("nodewatch.dispatcher")

_LATER_TIERS = (PriorityTier.HIGH, PriorityTier.NORMAL, PriorityTier.LOW)


class _Delivery:
    """One node's dispatch while its IMMEDIATE tier is still open.

    ``outstanding`` counts unfinished IMMEDIATE work: the inline pass,
    each spawned awaitable and each scheduled retry.  The tier completes
    when it drops to zero.
    """

    __slots__ = ("holding", "ids", "later", "node", "outstanding")

    def __init__(
        self,
        node: Any,
        ids: frozenset[str],
        later: dict[PriorityTier, list[CallbackRegistration]],
    ) -> None:
        self.node = node
        self.ids = ids
        self.later = later
        self.outstanding = 0
        self.holding = False


class Dispatcher:
    """Runs matching handlers for one node at a time.

    Parameters
    ----------
    config:
        Tier delays, retry backoff and the error hook.
    host:
        Clock, timers and the driver for awaitable handler results.
    registry:
        Current registrations.
    processed:
        Per-node delivery history.
    counters:
        Shared watcher counters.
    root:
        Tree root used to evaluate selector dependencies.

    Attributes
    ----------
    page_types:
        Page types reported by the classifier; registrations restricted to
        page types only match while one of theirs is present.
    """

    def __init__(
        self,
        config: WatchConfig,
        host: HostScheduler,
        registry: CallbackRegistry,
        processed: ProcessedSet,
        counters: WatchCounters,
        *,
        root: Any = None,
    ) -> None:
        self._config = config
        self._host = host
        self._registry = registry
        self._processed = processed
        self._counters = counters
        self._root = root
        self._queue = DelayedTaskQueue(host)
        self._retry_timers: set[TimerHandle] = set()
        self._active: dict[int, _Delivery] = {}
        self._in_flight = 0
        self._closed = False
        self.page_types: frozenset[str] = frozenset()

    @property
    def queue(self) -> DelayedTaskQueue:
        return self._queue

    @property
    def in_flight(self) -> int:
        """IMMEDIATE awaitables that have not settled yet."""
        return self._in_flight

    @property
    def pending_retries(self) -> int:
        return len(self._retry_timers)

    @property
    def open_deliveries(self) -> int:
        """Nodes whose IMMEDIATE tier has not completed yet."""
        return len(self._active)

    def _tier_delay(self, tier: PriorityTier) -> float:
        if tier is PriorityTier.HIGH:
            return self._config.high_delay
        if tier is PriorityTier.NORMAL:
            return self._config.normal_delay
        return self._config.low_delay

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, node: Any) -> bool:
        """Dispatch *node*.  Returns ``True`` if any handler was invoked."""
        if self._closed:
            return False
        if not node.is_connected:
            self._counters.bump("stale_skips")
            self._processed.discard(node)
            return False

        delivered = self._processed.delivered(node)
        open_delivery = self._active.get(id(node))
        if open_delivery is not None:
            delivered = delivered | open_delivery.ids
        matches = [
            registration
            for registration in self._registry.matching(node, self.page_types, self._root)
            if registration.id not in delivered
        ]
        if not matches:
            if open_delivery is None:
                self._processed.mark(node, (), self._host.time())
            return False

        tiers: dict[PriorityTier, list[CallbackRegistration]] = {}
        for registration in matches:
            tiers.setdefault(registration.priority, []).append(registration)

        self._counters.bump("dispatched_nodes")

        immediate = tiers.pop(PriorityTier.IMMEDIATE, [])
        delivery = _Delivery(node, frozenset(r.id for r in matches), tiers)
        # The inline pass counts as outstanding so the tier cannot complete
        # before every IMMEDIATE handler has been started.
        delivery.outstanding = 1
        if open_delivery is None:
            self._active[id(node)] = delivery
        for registration in immediate:
            self._attempt(registration, node, 0, delivery)
        self._settle(delivery)
        return True

    def _run_group(self, group: list[CallbackRegistration], node: Any) -> None:
        for registration in group:
            if self._closed:
                return
            self._attempt(registration, node, 0, None)

    # ------------------------------------------------------------------
    # IMMEDIATE tier bookkeeping
    # ------------------------------------------------------------------

    def _open(self, delivery: _Delivery | None) -> None:
        if delivery is None:
            return
        delivery.outstanding += 1
        if not delivery.holding:
            delivery.holding = True
            self._queue.hold()

    def _settle(self, delivery: _Delivery | None) -> None:
        if delivery is None:
            return
        delivery.outstanding -= 1
        if delivery.outstanding > 0:
            return
        if self._active.get(id(delivery.node)) is delivery:
            del self._active[id(delivery.node)]
        if self._closed:
            return

        node = delivery.node
        for tier in _LATER_TIERS:
            group = delivery.later.get(tier)
            if group:
                self._queue.schedule(
                    tier,
                    self._tier_delay(tier),
                    lambda group=group: self._run_group(group, node),
                )
        self._processed.mark(node, delivery.ids, self._host.time())
        if delivery.holding:
            delivery.holding = False
            self._queue.release()

    # ------------------------------------------------------------------
    # Invocation and failure handling
    # ------------------------------------------------------------------

    def _attempt(
        self,
        registration: CallbackRegistration,
        node: Any,
        attempt: int,
        delivery: _Delivery | None,
    ) -> None:
        try:
            result = registration.handler(node)
        except Exception as exc:
            self._failed(registration, node, attempt, exc, delivery)
            return
        if inspect.isawaitable(result):
            self._await(registration, node, attempt, result, delivery)

    def _await(
        self,
        registration: CallbackRegistration,
        node: Any,
        attempt: int,
        awaitable: Awaitable[Any],
        delivery: _Delivery | None,
    ) -> None:
        try:
            future = self._host.spawn(awaitable)
        except Exception as exc:
            close = getattr(awaitable, "close", None)
            if close is not None:
                close()
            self._failed(registration, node, attempt, exc, delivery)
            return

        if delivery is not None:
            self._in_flight += 1
            self._open(delivery)

        def settled(fut: Any) -> None:
            if delivery is not None:
                self._in_flight -= 1
            if not fut.cancelled():
                exc = fut.exception()
                if exc is not None and isinstance(exc, Exception):
                    self._failed(registration, node, attempt, exc, delivery)
            self._settle(delivery)

        future.add_done_callback(settled)

    def _failed(
        self,
        registration: CallbackRegistration,
        node: Any,
        attempt: int,
        exc: Exception,
        delivery: _Delivery | None,
    ) -> None:
        if self._closed:
            return
        tier = registration.priority.value
        self._counters.bump("handler_failures", tags={"tier": tier})
        fields = {
            "op": "dispatch",
            "registration_id": registration.id,
            "priority": tier,
            "node": node,
            "attempt": attempt + 1,
            "error": repr(exc),
        }

        if should_retry(registration.retry, attempt):
            delay = compute_backoff(
                attempt,
                base=self._config.retry_base_delay,
                maximum=self._config.retry_max_delay,
                jitter=self._config.retry_jitter,
            )
            self._counters.bump("retries", tags={"tier": tier})
            log.warning("Handler failed; retrying", extra={"extra_fields": {**fields, "delay": delay}})
            self._schedule_retry(registration, node, attempt + 1, delay, delivery)
            return

        self._counters.bump("missed_dispatches")
        context = {
            "registration_id": registration.id,
            "priority": tier,
            "attempts": attempt + 1,
        }
        error: NodewatchHandlerError
        if registration.retry.enabled:
            error = NodewatchRetryExhaustedError(
                f"Handler {registration.id!r} failed {attempt + 1} times; giving up",
                context=context,
                cause=exc,
            )
        else:
            error = NodewatchHandlerError(
                f"Handler {registration.id!r} failed",
                context=context,
                cause=exc,
            )
        log.warning("Handler abandoned", extra={"extra_fields": fields})
        self._report(error)

    def _schedule_retry(
        self,
        registration: CallbackRegistration,
        node: Any,
        attempt: int,
        delay: float,
        delivery: _Delivery | None,
    ) -> None:
        # A retried IMMEDIATE handler keeps its tier open until it settles.
        self._open(delivery)

        def fire() -> None:
            self._retry_timers.discard(handle)
            if self._closed:
                return
            self._attempt(registration, node, attempt, delivery)
            self._settle(delivery)

        handle = self._host.call_later(delay, fire)
        self._retry_timers.add(handle)

    def _report(self, error: NodewatchHandlerError) -> None:
        hook = self._config.on_handler_error
        if hook is None:
            return
        try:
            hook(error)
        except Exception:
            log.warning(
                "on_handler_error hook raised",
                exc_info=True,
                extra={"extra_fields": {"op": "report", "code": error.code}},
            )

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Cancel tier tasks and retry timers; dispatch nothing further."""
        self._closed = True
        self._queue.cancel_all()
        for handle in list(self._retry_timers):
            handle.cancel()
        self._retry_timers.clear()
        self._active.clear()
