"""Tests for observability: structured logging, metrics hooks and counters."""

from __future__ import annotations

import io
import json
import logging
import sys

import pytest

from nodewatch.observability import (
    MetricsHook,
    NoopMetricsHook,
    StructuredFormatter,
    WatchCounters,
    describe_node,
    get_logger,
)


def _record(msg, *, exc_info=None, stack_info=None, extra_fields=None):
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    if extra_fields is not None:
        record.extra_fields = extra_fields
    if stack_info is not None:
        record.stack_info = stack_info
    return record


class TestDescribeNode:
    def test_tag_id_and_classes(self, make):
        node = make("div", cls="post  big", id="post-3")
        assert describe_node(node) == "div#post-3.post.big"

    def test_tag_only(self, make):
        assert describe_node(make("span")) == "span"

    def test_non_node_falls_back_to_str(self):
        assert describe_node(42) == "42"


class TestStructuredFormatter:
    def test_basic_format(self):
        result = json.loads(StructuredFormatter().format(_record("hello")))
        assert result["message"] == "hello"
        assert result["level"] == "INFO"
        assert result["logger"] == "test"
        assert "ts" in result

    def test_extra_fields_merged(self):
        record = _record("msg", extra_fields={"registration_id": "badge", "attempt": 2})
        result = json.loads(StructuredFormatter().format(record))
        assert result["registration_id"] == "badge"
        assert result["attempt"] == 2

    def test_nodes_rendered_as_labels(self, make):
        node = make("a", cls="quote-link")
        record = _record("msg", extra_fields={"node": node, "nodes": (node,)})
        result = json.loads(StructuredFormatter().format(record))
        assert result["node"] == "a.quote-link"
        assert result["nodes"] == ["a.quote-link"]

    def test_exception_info_included(self):
        try:
            raise ValueError("handler broke")
        except ValueError:
            exc_info = sys.exc_info()
        result = json.loads(StructuredFormatter().format(_record("err", exc_info=exc_info)))
        assert "ValueError" in result["exception"]

    def test_stack_info_included(self):
        result = json.loads(StructuredFormatter().format(_record("m", stack_info="Stack")))
        assert result["stack_info"] == "Stack"


class TestGetLogger:
    def test_idempotent_no_duplicate_handlers(self):
        name = "test.nodewatch.idempotent"
        first = get_logger(name)
        count = len(first.handlers)
        assert get_logger(name) is first
        assert len(first.handlers) == count
        assert first.propagate is False

    def test_string_level(self):
        logger = get_logger("test.nodewatch.level", level="error")
        assert logger.level == logging.ERROR

    def test_level_from_environment(self, monkeypatch):
        monkeypatch.setenv("NODEWATCH_LOG_LEVEL", "debug")
        assert get_logger("test.nodewatch.env").level == logging.DEBUG

    def test_unknown_level_name_falls_back(self, monkeypatch):
        monkeypatch.setenv("NODEWATCH_LOG_LEVEL", "chatty")
        assert get_logger("test.nodewatch.badenv").level == logging.WARNING

    def test_writes_json_lines(self):
        stream = io.StringIO()
        logger = get_logger("test.nodewatch.stream", level="INFO", stream=stream)
        logger.info("Watcher started", extra={"extra_fields": {"op": "start"}})
        line = json.loads(stream.getvalue().strip())
        assert line["message"] == "Watcher started"
        assert line["op"] == "start"


class TestMetricsHooks:
    def test_noop_hook_satisfies_protocol(self):
        hook = NoopMetricsHook()
        assert isinstance(hook, MetricsHook)
        assert hook.increment("x") is None
        assert hook.timing("x", 1.0) is None
        assert hook.gauge("x", 1.0, tags={"a": "b"}) is None

    def test_recording_hook_satisfies_protocol(self, metrics_hook):
        assert isinstance(metrics_hook, MetricsHook)


class TestWatchCounters:
    def test_bump_updates_and_forwards(self, metrics_hook):
        counters = WatchCounters(metrics_hook)
        counters.bump("total_notifications", 3)
        counters.bump("retries", tags={"tier": "low"})
        assert counters["total_notifications"] == 3
        assert counters["retries"] == 1
        assert metrics_hook.increments == [
            {"name": "nodewatch.notifications_total", "value": 3, "tags": None},
            {"name": "nodewatch.retries_total", "value": 1, "tags": {"tier": "low"}},
        ]

    def test_counters_never_decrease(self):
        counters = WatchCounters()
        with pytest.raises(ValueError):
            counters.bump("drains", -1)

    def test_unknown_counter(self):
        with pytest.raises(KeyError):
            WatchCounters().bump("bogus")

    def test_touch_is_monotone(self):
        counters = WatchCounters()
        counters.touch(5.0)
        counters.touch(3.0)
        assert counters.last_activity_time == 5.0

    def test_timing_and_gauge_forwarded(self, metrics_hook):
        counters = WatchCounters(metrics_hook)
        counters.timing("nodewatch.drain_duration_ms", 4.5)
        counters.gauge("nodewatch.pending_nodes", 7)
        assert metrics_hook.timings[0]["ms"] == 4.5
        assert metrics_hook.gauges[0]["value"] == 7

    def test_snapshot(self):
        counters = WatchCounters()
        counters.bump("dispatched_nodes", 2)
        counters.touch(1.5)
        snap = counters.snapshot(pending_nodes=4, processed_nodes=2, registrations=1)
        assert snap.dispatched_nodes == 2
        assert snap.last_activity_time == 1.5
        assert snap.pending_nodes == 4
        assert snap.registrations == 1

    def test_default_hook_is_noop(self):
        assert isinstance(WatchCounters().hook, NoopMetricsHook)
