"""Tests for ProcessedSet: per-node delivery history with LRU bounds."""

from __future__ import annotations

import pytest

from nodewatch.observability import WatchCounters
from nodewatch.tracking import ProcessedSet
from nodewatch.tree import Document


@pytest.fixture
def doc():
    return Document()


def connected(doc, n=1):
    nodes = [doc.root.raw_append(doc.create_element("div")) for _ in range(n)]
    return nodes if n > 1 else nodes[0]


class TestProcessedSet:
    def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError, match="capacity"):
            ProcessedSet(0)

    def test_mark_records_delivered_ids(self, doc):
        processed = ProcessedSet(10)
        node = connected(doc)
        processed.mark(node, ["a"], 1.0)
        processed.mark(node, ["b"], 2.0)
        assert node in processed
        assert processed.delivered(node) == frozenset({"a", "b"})

    def test_mark_with_no_ids_still_marks(self, doc):
        processed = ProcessedSet(10)
        node = connected(doc)
        processed.mark(node, (), 0.0)
        assert node in processed
        assert processed.delivered(node) == frozenset()

    def test_delivered_for_unknown_node_is_empty(self, doc):
        assert ProcessedSet(10).delivered(connected(doc)) == frozenset()

    def test_discard(self, doc):
        processed = ProcessedSet(10)
        node = connected(doc)
        processed.mark(node, ["a"], 0.0)
        assert processed.discard(node) is True
        assert processed.discard(node) is False
        assert processed.delivered(node) == frozenset()

    def test_lru_eviction_counts(self, doc):
        counters = WatchCounters()
        processed = ProcessedSet(2, counters)
        a, b, c = connected(doc, 3)
        processed.mark(a, [], 0.0)
        processed.mark(b, [], 0.0)
        processed.mark(a, [], 1.0)  # a becomes most recent
        processed.mark(c, [], 2.0)
        assert b not in processed
        assert a in processed and c in processed
        assert counters["evictions"] == 1

    def test_sweep_keeps_attached_entries_regardless_of_age(self, doc):
        processed = ProcessedSet(10)
        old = connected(doc)
        processed.mark(old, ["r1"], 0.0)
        assert processed.sweep(now=10_000.0, grace=60.0) == 0
        assert processed.delivered(old) == frozenset({"r1"})

    def test_sweep_drops_detached_after_grace(self, doc):
        counters = WatchCounters()
        processed = ProcessedSet(10, counters)
        stays, gone = connected(doc, 2)
        processed.mark(stays, [], 0.0)
        processed.mark(gone, [], 0.0)
        doc.root.raw_remove_child(gone)
        # First sighting starts the grace period.
        assert processed.sweep(now=100.0, grace=60.0) == 0
        assert gone in processed
        assert processed.sweep(now=160.0, grace=60.0) == 1
        assert gone not in processed
        assert stays in processed
        assert counters["evictions"] == 1

    def test_reattached_node_restarts_grace(self, doc):
        processed = ProcessedSet(10)
        node = connected(doc)
        processed.mark(node, [], 0.0)
        doc.root.raw_remove_child(node)
        processed.sweep(now=10.0, grace=60.0)
        doc.root.raw_append(node)
        processed.sweep(now=50.0, grace=60.0)
        doc.root.raw_remove_child(node)
        assert processed.sweep(now=80.0, grace=60.0) == 0
        assert node in processed
        assert processed.sweep(now=140.0, grace=60.0) == 1

    def test_clear(self, doc):
        processed = ProcessedSet(10)
        processed.mark(connected(doc), [], 0.0)
        processed.clear()
        assert len(processed) == 0
