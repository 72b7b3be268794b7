"""Periodic reconciliation and embedded-region monitoring."""

from .loop import ReconciliationLoop
from .regions import EmbeddedRegionMonitor

__all__ = ["EmbeddedRegionMonitor", "ReconciliationLoop"]
