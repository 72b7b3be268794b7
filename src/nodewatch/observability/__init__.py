"""Observability: structured logging, metrics hooks and counters for nodewatch."""

from __future__ import annotations

from .counters import WatchCounters
from .logger import StructuredFormatter, describe_node, get_logger
from .metrics import MetricsHook, NoopMetricsHook

__all__ = [
    "MetricsHook",
    "NoopMetricsHook",
    "StructuredFormatter",
    "WatchCounters",
    "describe_node",
    "get_logger",
]
