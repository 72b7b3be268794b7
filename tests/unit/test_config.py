"""Tests for WatchConfig defaults and validation."""

from __future__ import annotations

import pytest

from nodewatch.config import DEFAULT_DYNAMIC_SELECTORS, WatchConfig


def test_defaults_are_valid():
    config = WatchConfig()
    assert config.chunk_size == 25
    assert config.frame_budget_ms == 8.0
    assert config.high_delay <= config.normal_delay <= config.low_delay
    assert config.default_max_attempts == 3
    assert config.metrics is None
    assert config.on_handler_error is None


def test_dynamic_selectors_are_copied_per_instance():
    a = WatchConfig()
    b = WatchConfig()
    a.dynamic_selectors.append(".extra")
    assert ".extra" not in b.dynamic_selectors
    assert ".extra" not in DEFAULT_DYNAMIC_SELECTORS


def test_zero_budget_is_allowed():
    assert WatchConfig(frame_budget_ms=0).frame_budget_ms == 0


@pytest.mark.parametrize(
    "field, value",
    [
        ("chunk_size", 0),
        ("frame_budget_ms", -1),
        ("high_delay", -0.1),
        ("default_max_attempts", 0),
        ("retry_base_delay", -1),
        ("retry_max_delay", -1),
        ("quick_rescan_interval", 0),
        ("quick_rescan_min_gap", -1),
        ("deep_rescan_interval", 0),
        ("max_traversal_nodes", 0),
        ("max_traversal_depth", 0),
        ("deep_rescan_max_nodes", 0),
        ("processed_capacity", 0),
        ("processed_ttl", 0),
        ("governor_interval", 0),
    ],
)
def test_invalid_values_rejected(field, value):
    with pytest.raises(ValueError, match=field):
        WatchConfig(**{field: value})


def test_tier_delays_must_be_ordered():
    with pytest.raises(ValueError, match="non-decreasing"):
        WatchConfig(high_delay=0.5, normal_delay=0.1)
    with pytest.raises(ValueError, match="non-decreasing"):
        WatchConfig(normal_delay=0.2, low_delay=0.1)
