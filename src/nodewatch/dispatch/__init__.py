"""Draining, matching and running handlers.

Exports
-------
DrainScheduler
    Budgeted, chunked drains of the pending set.
Dispatcher
    Per-node tiered handler execution with retries.
CallbackRegistry / build_registration
    Registration storage and validation.
DelayedTaskQueue
    Host-clock queue behind the HIGH, NORMAL and LOW tiers.
"""

from .delayed import DelayedTaskQueue
from .dispatcher import Dispatcher
from .registry import CallbackRegistry, build_registration
from .retries import compute_backoff, should_retry
from .scheduler import DrainScheduler

__all__ = [
    "CallbackRegistry",
    "DelayedTaskQueue",
    "Dispatcher",
    "DrainScheduler",
    "build_registration",
    "compute_backoff",
    "should_retry",
]
