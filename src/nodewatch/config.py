"""Watcher configuration for nodewatch.

:class:`WatchConfig` is a frozen-friendly dataclass that captures every
tuneable knob of the dispatch pipeline.  Instances are passed to
:class:`~nodewatch.watcher.NodeWatcher` and shared by every component it
wires together.

Module-level constants define the default marker selectors:

* :data:`DEFAULT_DYNAMIC_SELECTORS` -- queried by the quick rescan.
* :data:`DEFAULT_INTERACTIVE_SELECTOR` -- text-change anchor elements.
* :data:`DEFAULT_STYLE_PROPERTIES` -- style properties that affect
  visibility.

All durations are in seconds except ``frame_budget_ms``.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Marker constants
# ---------------------------------------------------------------------------

DEFAULT_DYNAMIC_SELECTORS: list[str] = [
    "[data-dynamic]",
    "[data-volatile]",
    "[aria-live]",
    ".dynamic-content",
]
"""Markers for content that is frequently replaced after load."""

DEFAULT_INTERACTIVE_SELECTOR: str = "a, button, input, textarea, select, [role=button]"
"""Elements whose meaning depends on their text (actionable controls)."""

DEFAULT_VISIBILITY_ATTRIBUTES: list[str] = ["class", "style", "hidden"]
"""Attributes whose change can newly qualify a hidden subtree."""

DEFAULT_STYLE_PROPERTIES: list[str] = [
    "display",
    "visibility",
    "opacity",
    "position",
    "width",
    "height",
]
"""``style`` properties whose change is treated as a visibility flip."""


# ---------------------------------------------------------------------------
# Configuration dataclass
# ---------------------------------------------------------------------------

@dataclass
class WatchConfig:
    """Complete configuration for a :class:`NodeWatcher`.

    Every parameter has a default, so ``WatchConfig()`` is a working
    configuration.

    Parameters
    ----------
    chunk_size:
        Number of nodes dispatched between time-budget checks in a drain.
    frame_budget_ms:
        Per-drain time budget in milliseconds.  Once exceeded, the drain
        yields one host tick before continuing with the next chunk.
    high_delay:
        Delay (seconds) after IMMEDIATE completion before HIGH handlers run.
    normal_delay:
        Delay before NORMAL handlers run.
    low_delay:
        Delay before LOW handlers run.
    default_max_attempts:
        ``max_attempts`` used when a registration enables retry without
        naming a count.  Counts the first attempt.
    retry_base_delay:
        Base delay (seconds) for exponential handler-retry backoff.
    retry_max_delay:
        Upper cap (seconds) on the computed backoff.
    retry_jitter:
        Scale each backoff randomly to 50--100 % of its value.
    quick_rescan_interval:
        Period of the quick rescan timer.
    quick_rescan_min_gap:
        Minimum time between two quick rescans that actually query the tree.
    deep_rescan_interval:
        Period of the full deep rescan.
    dynamic_selectors:
        Markers queried by the quick rescan.
    volatile_selector:
        Nodes matching this selector are re-dispatched on every insert even
        when already processed.
    interactive_selector:
        Anchor elements for text-change expansion.
    visibility_attributes:
        Attribute names whose change re-expands the target's descendants.
    visibility_style_properties:
        For ``style`` changes, only a change in one of these properties
        counts as a visibility flip.
    origin_attribute / origin_value:
        Mutations whose target carries ``origin_attribute=origin_value`` were
        made by a watcher and are ignored.
    max_traversal_nodes:
        Node-count ceiling for one subtree expansion.
    max_traversal_depth:
        Depth ceiling for one subtree expansion.
    deep_rescan_max_nodes:
        Node-count ceiling for one deep rescan traversal of one root.
    processed_capacity:
        Maximum entries in the processed-node table before LRU eviction.
    processed_ttl:
        Seconds a processed entry survives after its node leaves the tree.
        Entries for nodes still in the tree never expire by age.
    governor_interval:
        Period of the memory governor sweep.
    metrics:
        Optional :class:`~nodewatch.observability.MetricsHook` backend.
    on_handler_error:
        Optional callable receiving a
        :class:`~nodewatch.errors.NodewatchHandlerError` whenever a handler
        is abandoned.
    """

    # ── Scheduler ───────────────────────────────────────────────────────
    chunk_size: int = 25

    frame_budget_ms: float = 8.0

    # ── Priority tiers ──────────────────────────────────────────────────
    high_delay: float = 0.0

    normal_delay: float = 0.010

    low_delay: float = 0.100

    # ── Handler retry ───────────────────────────────────────────────────
    default_max_attempts: int = 3

    retry_base_delay: float = 0.1

    retry_max_delay: float = 5.0

    retry_jitter: bool = False

    # ── Reconciliation ──────────────────────────────────────────────────
    quick_rescan_interval: float = 5.0

    quick_rescan_min_gap: float = 10.0

    deep_rescan_interval: float = 300.0

    dynamic_selectors: list[str] = field(
        default_factory=lambda: list(DEFAULT_DYNAMIC_SELECTORS),
    )

    # ── Collector ───────────────────────────────────────────────────────
    volatile_selector: str = "[data-volatile]"

    interactive_selector: str = DEFAULT_INTERACTIVE_SELECTOR

    visibility_attributes: list[str] = field(
        default_factory=lambda: list(DEFAULT_VISIBILITY_ATTRIBUTES),
    )

    visibility_style_properties: list[str] = field(
        default_factory=lambda: list(DEFAULT_STYLE_PROPERTIES),
    )

    origin_attribute: str = "data-observer-origin"

    origin_value: str = "nodewatch"

    # ── Traversal guards ────────────────────────────────────────────────
    max_traversal_nodes: int = 5000

    max_traversal_depth: int = 256

    deep_rescan_max_nodes: int = 50_000

    # ── Memory ──────────────────────────────────────────────────────────
    processed_capacity: int = 20_000

    processed_ttl: float = 300.0

    governor_interval: float = 30.0

    # ── Observability ──────────────────────────────────────────────────
    metrics: Any | None = None

    on_handler_error: Callable[[Exception], None] | None = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {self.chunk_size}")
        if self.frame_budget_ms < 0:
            raise ValueError(f"frame_budget_ms must be >= 0, got {self.frame_budget_ms}")
        for name in ("high_delay", "normal_delay", "low_delay"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")
        if not self.high_delay <= self.normal_delay <= self.low_delay:
            raise ValueError(
                "tier delays must be non-decreasing: "
                f"high={self.high_delay}, normal={self.normal_delay}, low={self.low_delay}"
            )
        if self.default_max_attempts < 1:
            raise ValueError(
                f"default_max_attempts must be >= 1, got {self.default_max_attempts}"
            )
        if self.retry_base_delay < 0:
            raise ValueError(f"retry_base_delay must be >= 0, got {self.retry_base_delay}")
        if self.retry_max_delay < 0:
            raise ValueError(f"retry_max_delay must be >= 0, got {self.retry_max_delay}")
        if self.quick_rescan_interval <= 0:
            raise ValueError(
                f"quick_rescan_interval must be > 0, got {self.quick_rescan_interval}"
            )
        if self.quick_rescan_min_gap < 0:
            raise ValueError(
                f"quick_rescan_min_gap must be >= 0, got {self.quick_rescan_min_gap}"
            )
        if self.deep_rescan_interval <= 0:
            raise ValueError(
                f"deep_rescan_interval must be > 0, got {self.deep_rescan_interval}"
            )
        if self.max_traversal_nodes < 1:
            raise ValueError(
                f"max_traversal_nodes must be >= 1, got {self.max_traversal_nodes}"
            )
        if self.max_traversal_depth < 1:
            raise ValueError(
                f"max_traversal_depth must be >= 1, got {self.max_traversal_depth}"
            )
        if self.deep_rescan_max_nodes < 1:
            raise ValueError(
                f"deep_rescan_max_nodes must be >= 1, got {self.deep_rescan_max_nodes}"
            )
        if self.processed_capacity < 1:
            raise ValueError(
                f"processed_capacity must be >= 1, got {self.processed_capacity}"
            )
        if self.processed_ttl <= 0:
            raise ValueError(f"processed_ttl must be > 0, got {self.processed_ttl}")
        if self.governor_interval <= 0:
            raise ValueError(f"governor_interval must be > 0, got {self.governor_interval}")
