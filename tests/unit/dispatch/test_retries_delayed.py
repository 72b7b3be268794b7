"""Tests for handler retry decisions and the delayed-task queue."""

from __future__ import annotations

from unittest.mock import patch

from nodewatch.dispatch import DelayedTaskQueue, compute_backoff, should_retry
from nodewatch.models import PriorityTier, RetryPolicy

# ---------------------------------------------------------------------------
# should_retry / compute_backoff
# ---------------------------------------------------------------------------


class TestShouldRetry:
    def test_disabled_policy_never_retries(self):
        assert should_retry(RetryPolicy(enabled=False, max_attempts=5), 0) is False

    def test_max_attempts_counts_the_first_attempt(self):
        policy = RetryPolicy(enabled=True, max_attempts=3)
        assert should_retry(policy, 0) is True
        assert should_retry(policy, 1) is True
        assert should_retry(policy, 2) is False

    def test_single_attempt_policy(self):
        assert should_retry(RetryPolicy(enabled=True, max_attempts=1), 0) is False


class TestComputeBackoff:
    def test_exponential_growth(self):
        assert compute_backoff(0, base=0.1, maximum=5.0) == 0.1
        assert compute_backoff(1, base=0.1, maximum=5.0) == 0.2
        assert compute_backoff(3, base=0.1, maximum=5.0) == 0.8

    def test_capped_at_maximum(self):
        assert compute_backoff(20, base=0.1, maximum=5.0) == 5.0

    def test_jitter_scales_between_half_and_full(self):
        with patch("nodewatch.dispatch.retries.random.random", return_value=0.0):
            assert compute_backoff(2, base=1.0, maximum=60.0, jitter=True) == 2.0
        with patch("nodewatch.dispatch.retries.random.random", return_value=1.0):
            assert compute_backoff(2, base=1.0, maximum=60.0, jitter=True) == 4.0


# ---------------------------------------------------------------------------
# DelayedTaskQueue
# ---------------------------------------------------------------------------


class TestDelayedTaskQueue:
    def test_runs_in_due_order(self, host):
        queue = DelayedTaskQueue(host)
        order = []
        queue.schedule(PriorityTier.LOW, 0.1, lambda: order.append("low"))
        queue.schedule(PriorityTier.HIGH, 0.0, lambda: order.append("high"))
        queue.schedule(PriorityTier.NORMAL, 0.01, lambda: order.append("normal"))
        host.run_until_idle()
        assert order == ["high"]
        host.advance(0.1)
        assert order == ["high", "normal", "low"]
        assert queue.pending == 0

    def test_same_due_time_orders_by_tier_then_sequence(self, host):
        queue = DelayedTaskQueue(host)
        order = []
        queue.schedule(PriorityTier.LOW, 0.0, lambda: order.append("low"))
        queue.schedule(PriorityTier.NORMAL, 0.0, lambda: order.append("normal-1"))
        queue.schedule(PriorityTier.NORMAL, 0.0, lambda: order.append("normal-2"))
        host.run_until_idle()
        assert order == ["normal-1", "normal-2", "low"]

    def test_uses_a_single_timer(self, host):
        queue = DelayedTaskQueue(host)
        for delay in (0.3, 0.2, 0.1):
            queue.schedule(PriorityTier.LOW, delay, lambda: None)
        assert len(queue) == 3
        # earlier tasks re-arm; the superseded timers are cancelled
        assert host.pending_count() == 1

    def test_hold_defers_until_release(self, host):
        queue = DelayedTaskQueue(host)
        ran = []
        queue.hold()
        queue.schedule(PriorityTier.HIGH, 0.0, lambda: ran.append(1))
        host.advance(1.0)
        assert ran == []
        assert queue.held
        queue.release()
        host.run_until_idle()
        assert ran == [1]

    def test_nested_holds(self, host):
        queue = DelayedTaskQueue(host)
        ran = []
        queue.hold()
        queue.hold()
        queue.schedule(PriorityTier.HIGH, 0.0, lambda: ran.append(1))
        queue.release()
        host.run_until_idle()
        assert ran == []
        queue.release()
        host.run_until_idle()
        assert ran == [1]

    def test_release_without_hold_is_harmless(self, host):
        queue = DelayedTaskQueue(host)
        queue.release()
        assert not queue.held

    def test_task_scheduling_more_work(self, host):
        queue = DelayedTaskQueue(host)
        ran = []

        def first():
            ran.append("first")
            queue.schedule(PriorityTier.LOW, 0.5, lambda: ran.append("second"))

        queue.schedule(PriorityTier.HIGH, 0.0, first)
        host.advance(0.5)
        assert ran == ["first", "second"]

    def test_cancel_all(self, host):
        queue = DelayedTaskQueue(host)
        ran = []
        queue.schedule(PriorityTier.LOW, 0.1, lambda: ran.append(1))
        queue.cancel_all()
        queue.schedule(PriorityTier.LOW, 0.1, lambda: ran.append(2))
        host.advance(1.0)
        assert ran == []
        assert host.pending_count() == 0
