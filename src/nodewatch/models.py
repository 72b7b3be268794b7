"""Public data models for nodewatch.

This module contains the change-event type, the registration record, the
priority and change-kind enums, and the metrics snapshot returned by
:meth:`NodeWatcher.get_metrics`.  All types are plain dataclasses; the
records that must never change after creation are frozen.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ChangeKind(str, Enum):
    """Kinds of raw change notification a change source can report."""

    INSERT = "insert"
    """Child nodes were added under ``target``."""

    REMOVE = "remove"
    """Child nodes were removed from ``target``."""

    ATTRIBUTE = "attribute"
    """An attribute of ``target`` changed."""

    TEXT = "text"
    """The text content of ``target`` changed."""


class PriorityTier(str, Enum):
    """Urgency tiers, in execution order."""

    IMMEDIATE = "immediate"
    """Run inline during the drain; later tiers wait for completion."""

    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Position in the fixed execution order (0 runs first)."""
        return _TIER_ORDER.index(self)

    @classmethod
    def parse(cls, value: PriorityTier | str) -> PriorityTier:
        """Coerce *value* to a tier.  ``"critical"`` is accepted for IMMEDIATE.

        Raises
        ------
        ValueError
            If *value* names no tier.
        """
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        if key == "critical":
            return cls.IMMEDIATE
        return cls(key)


_TIER_ORDER: tuple[PriorityTier, ...] = (
    PriorityTier.IMMEDIATE,
    PriorityTier.HIGH,
    PriorityTier.NORMAL,
    PriorityTier.LOW,
)


# ---------------------------------------------------------------------------
# Change events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ChangeEvent:
    """A single raw change notification.

    Attributes
    ----------
    target:
        The node the change was reported on.  For INSERT/REMOVE this is the
        parent whose child list changed.
    kind:
        What changed.
    added_nodes:
        Roots of the inserted subtrees (INSERT only).
    removed_nodes:
        Roots of the removed subtrees (REMOVE only).
    attribute_name:
        Name of the changed attribute (ATTRIBUTE only).
    old_value:
        Previous attribute value or previous text, when the source records it.
    """

    target: Any
    kind: ChangeKind
    added_nodes: tuple[Any, ...] = ()
    removed_nodes: tuple[Any, ...] = ()
    attribute_name: str | None = None
    old_value: str | None = None


# ---------------------------------------------------------------------------
# Registrations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RetryPolicy:
    """Retry behaviour for a failing handler.

    Attributes
    ----------
    enabled:
        Retry at all.  When ``False`` the first failure abandons the handler.
    max_attempts:
        Total attempts, including the first one.
    """

    enabled: bool = False
    max_attempts: int = 3

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    @property
    def attempts_allowed(self) -> int:
        return self.max_attempts if self.enabled else 1


@dataclass(frozen=True)
class CallbackRegistration:
    """An immutable watcher registration.

    Attributes
    ----------
    id:
        Unique registration id.
    predicate:
        ``(node) -> bool`` deciding whether the node is of interest.
    priority:
        Execution tier.
    handler:
        ``(node) -> None | Awaitable``.
    retry:
        Failure policy.
    selector:
        Source selector when the predicate was built from one; ``None`` for
        custom predicates.  Selector-based registrations get a synchronous
        catch-up scan on register.
    page_types:
        If non-empty, the registration only applies while the page
        classifier reports at least one of these types.
    dependencies:
        Selector strings that must match somewhere in the root, or
        zero-argument callables that must return truthy.
    match_descendants:
        Selector predicates also match nodes that merely *contain* a match.
    created_at:
        Host time at registration.
    """

    id: str
    predicate: Callable[[Any], bool]
    priority: PriorityTier
    handler: Callable[[Any], Any]
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    selector: str | None = None
    page_types: frozenset[str] = frozenset()
    dependencies: tuple[Any, ...] = ()
    match_descendants: bool = False
    created_at: float = 0.0


# ---------------------------------------------------------------------------
# Metrics snapshot
# ---------------------------------------------------------------------------

@dataclass
class WatchMetrics:
    """Read-only snapshot of watcher counters and gauges.

    Counters only ever grow.  Gauges reflect the state at snapshot time.
    """

    total_notifications: int = 0
    dispatched_nodes: int = 0
    missed_dispatches: int = 0
    last_activity_time: float = 0.0

    drains: int = 0
    yields: int = 0
    handler_failures: int = 0
    retries: int = 0
    stale_skips: int = 0
    traversal_truncations: int = 0
    regions_monitored: int = 0
    regions_unmonitored: int = 0
    evictions: int = 0
    rescanned_nodes: int = 0

    pending_nodes: int = 0
    processed_nodes: int = 0
    registrations: int = 0
