"""Tests for DrainScheduler: coalescing, chunking, budget yields."""

from __future__ import annotations

import pytest

from nodewatch.collect import PendingSet
from nodewatch.config import WatchConfig
from nodewatch.dispatch import DrainScheduler
from nodewatch.observability import WatchCounters


class Item:
    def __init__(self, n):
        self.n = n

    def __repr__(self):
        return f"Item({self.n})"


@pytest.fixture
def pending():
    return PendingSet()


@pytest.fixture
def counters():
    return WatchCounters()


@pytest.fixture
def seen():
    return []


def make_scheduler(host, pending, counters, dispatch, **overrides):
    config = WatchConfig(**overrides)
    return DrainScheduler(config, host, pending, counters, dispatch)


def fill(pending, n, start=0):
    items = [Item(i) for i in range(start, start + n)]
    for item in items:
        pending.add(item)
    return items


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


class TestScheduleDrain:
    def test_drain_runs_at_next_tick_not_inline(self, host, pending, counters, seen):
        scheduler = make_scheduler(host, pending, counters, seen.append)
        items = fill(pending, 3)
        scheduler.schedule_drain()
        assert seen == []
        assert scheduler.scheduled
        host.run_until_idle()
        assert seen == items
        assert not pending
        assert counters["drains"] == 1

    def test_schedule_is_idempotent(self, host, pending, counters, seen):
        scheduler = make_scheduler(host, pending, counters, seen.append)
        fill(pending, 2)
        for _ in range(5):
            scheduler.schedule_drain()
        assert host.pending_count() == 1
        host.run_until_idle()
        assert counters["drains"] == 1

    def test_empty_pending_runs_no_drain(self, host, pending, counters, seen):
        scheduler = make_scheduler(host, pending, counters, seen.append)
        scheduler.schedule_drain()
        host.run_until_idle()
        assert counters["drains"] == 0

    def test_work_added_mid_drain_gets_its_own_drain(self, host, pending, counters):
        seen = []
        late = Item("late")

        def dispatch(item):
            seen.append(item)
            if item.n == 0:
                pending.add(late)
                scheduler.schedule_drain()

        scheduler = make_scheduler(host, pending, counters, dispatch)
        fill(pending, 2)
        scheduler.schedule_drain()
        host.run_until_idle()
        assert [i.n for i in seen] == [0, 1, "late"]
        assert counters["drains"] == 2

    def test_drain_timing_is_reported(self, host, pending, metrics_hook, seen):
        counters = WatchCounters(metrics_hook)
        scheduler = make_scheduler(host, pending, counters, seen.append)
        fill(pending, 1)
        scheduler.schedule_drain()
        host.run_until_idle()
        assert [t["name"] for t in metrics_hook.timings] == ["nodewatch.drain_duration_ms"]


# ---------------------------------------------------------------------------
# Chunking and budget
# ---------------------------------------------------------------------------


class TestBudget:
    def test_fast_drain_never_yields(self, host, pending, counters, seen):
        scheduler = make_scheduler(host, pending, counters, seen.append, chunk_size=10)
        fill(pending, 95)
        scheduler.schedule_drain()
        host.run_until_idle()
        assert len(seen) == 95
        assert counters["yields"] == 0

    def test_slow_chunk_yields_between_chunks(self, host, pending, counters):
        seen = []
        ticks = []

        def slow(item):
            seen.append(item)
            host.now += 0.005  # 5 ms per node

        scheduler = make_scheduler(
            host, pending, counters, slow, chunk_size=2, frame_budget_ms=8.0
        )
        fill(pending, 6)
        scheduler.schedule_drain()

        # Each host callback is one frame; record how many nodes each frame ran.
        while host.pending_count():
            before = len(seen)
            assert host.step()
            ticks.append(len(seen) - before)
        assert ticks == [2, 2, 2]
        assert counters["yields"] == 2
        assert counters["drains"] == 1
        assert scheduler.in_progress is False

    def test_yielded_drain_holds_new_work_until_batch_completes(self, host, pending, counters):
        seen = []

        def slow(item):
            seen.append(item.n)
            host.now += 0.010

        scheduler = make_scheduler(host, pending, counters, slow, chunk_size=1)
        fill(pending, 3)
        scheduler.schedule_drain()
        host.step()
        assert seen == [0]
        assert scheduler.in_progress
        fill(pending, 1, start=10)
        scheduler.schedule_drain()
        host.run_until_idle()
        assert seen == [0, 1, 2, 10]
        assert counters["drains"] == 2


# ---------------------------------------------------------------------------
# force_immediate / cancel / close
# ---------------------------------------------------------------------------


class TestForceImmediate:
    def test_drains_inline_and_cancels_tick(self, host, pending, counters, seen):
        scheduler = make_scheduler(host, pending, counters, seen.append)
        items = fill(pending, 3)
        scheduler.schedule_drain()
        scheduler.force_immediate()
        assert seen == items
        assert not scheduler.scheduled
        assert host.pending_count() == 0

    def test_finishes_yielded_batch_first(self, host, pending, counters):
        seen = []

        def slow(item):
            seen.append(item.n)
            host.now += 0.010

        scheduler = make_scheduler(host, pending, counters, slow, chunk_size=1)
        fill(pending, 3)
        scheduler.schedule_drain()
        host.step()
        fill(pending, 1, start=10)
        scheduler.force_immediate()
        assert seen == [0, 1, 2, 10]
        assert not scheduler.in_progress
        assert host.pending_count() == 0

    def test_reentrant_call_reruns_after_batch(self, host, pending, counters):
        seen = []
        extra = Item("extra")

        def dispatch(item):
            seen.append(item.n)
            if item.n == 0:
                pending.add(extra)
                scheduler.force_immediate()
                assert seen == [0]

        scheduler = make_scheduler(host, pending, counters, dispatch)
        fill(pending, 2)
        scheduler.force_immediate()
        assert seen == [0, 1, "extra"]
        assert host.pending_count() == 0


class TestCancelAndClose:
    def test_cancel_returns_unfinished_batch_to_pending(self, host, pending, counters):
        def slow(item):
            host.now += 0.010

        scheduler = make_scheduler(host, pending, counters, slow, chunk_size=1)
        fill(pending, 3)
        scheduler.schedule_drain()
        host.step()
        scheduler.cancel()
        assert len(pending) == 2
        assert not scheduler.in_progress
        assert host.pending_count() == 0

    def test_close_refuses_further_work(self, host, pending, counters, seen):
        scheduler = make_scheduler(host, pending, counters, seen.append)
        fill(pending, 2)
        scheduler.schedule_drain()
        scheduler.close()
        scheduler.schedule_drain()
        scheduler.force_immediate()
        host.run_until_idle()
        assert seen == []
        assert host.pending_count() == 0
