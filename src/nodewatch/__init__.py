"""nodewatch -- tree-mutation watcher and prioritized handler dispatcher.

Public re-exports
-----------------

* **Watcher:** :class:`NodeWatcher`
* **Configuration:** :class:`WatchConfig`
* **Hosts:** :class:`AsyncioHost`, :class:`ManualHost`, :class:`HostScheduler`
* **Errors:** Every :class:`NodewatchError` subclass and :class:`ErrorCode`
* **Models:** Change events, registrations, tiers and the metrics snapshot
* **Protocols:** :class:`ContentNode`, :class:`ChangeSource`,
  :class:`EmbeddedRegionLike`, :class:`MetricsHook`

Usage::

    import asyncio
    from nodewatch import NodeWatcher
    from nodewatch.tree import Document

    async def main():
        doc = Document()
        with NodeWatcher(doc.root) as watcher:
            watcher.register(print, selector="a.quote-link", priority="high")
            watcher.start()
            doc.root.append(doc.create_element("a", {"class": "quote-link"}))
            await asyncio.sleep(0.05)

    asyncio.run(main())
"""

from __future__ import annotations

# ── Configuration ───────────────────────────────────────────────────────
from nodewatch.config import (
    DEFAULT_DYNAMIC_SELECTORS,
    DEFAULT_INTERACTIVE_SELECTOR,
    DEFAULT_STYLE_PROPERTIES,
    DEFAULT_VISIBILITY_ATTRIBUTES,
    WatchConfig,
)

# ── Errors ──────────────────────────────────────────────────────────────
from nodewatch.errors import (
    ErrorCode,
    NodewatchDestroyedError,
    NodewatchError,
    NodewatchHandlerError,
    NodewatchRegionAccessError,
    NodewatchRetryExhaustedError,
    NodewatchSelectorError,
    NodewatchValidationError,
)

# ── Hosts ───────────────────────────────────────────────────────────────
from nodewatch.host import AsyncioHost, HostScheduler, ManualHost

# ── Models ──────────────────────────────────────────────────────────────
from nodewatch.models import (
    CallbackRegistration,
    ChangeEvent,
    ChangeKind,
    PriorityTier,
    RetryPolicy,
    WatchMetrics,
)

# ── Observability ───────────────────────────────────────────────────────
from nodewatch.observability import MetricsHook, NoopMetricsHook

# ── Protocols ───────────────────────────────────────────────────────────
from nodewatch.protocols import ChangeSource, ContentNode, EmbeddedRegionLike

# ── Watcher ─────────────────────────────────────────────────────────────
from nodewatch.watcher import NodeWatcher

__all__ = [
    # Watcher
    "NodeWatcher",
    # Configuration
    "DEFAULT_DYNAMIC_SELECTORS",
    "DEFAULT_INTERACTIVE_SELECTOR",
    "DEFAULT_STYLE_PROPERTIES",
    "DEFAULT_VISIBILITY_ATTRIBUTES",
    "WatchConfig",
    # Hosts
    "AsyncioHost",
    "HostScheduler",
    "ManualHost",
    # Errors
    "ErrorCode",
    "NodewatchDestroyedError",
    "NodewatchError",
    "NodewatchHandlerError",
    "NodewatchRegionAccessError",
    "NodewatchRetryExhaustedError",
    "NodewatchSelectorError",
    "NodewatchValidationError",
    # Models
    "CallbackRegistration",
    "ChangeEvent",
    "ChangeKind",
    "PriorityTier",
    "RetryPolicy",
    "WatchMetrics",
    # Observability
    "MetricsHook",
    "NoopMetricsHook",
    # Protocols
    "ChangeSource",
    "ContentNode",
    "EmbeddedRegionLike",
]

__version__ = "0.1.0"
