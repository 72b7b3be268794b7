"""Retry decision logic and exponential backoff for failing handlers.

Two pure functions used by the dispatcher:

* :func:`should_retry` -- decide whether a failed handler runs again.
* :func:`compute_backoff` -- compute the delay before the next attempt.
"""

from __future__ import annotations

import random

from nodewatch.models import RetryPolicy


def should_retry(policy: RetryPolicy, attempt: int) -> bool:
    """Decide whether a handler that just failed should be run again.

    Parameters
    ----------
    policy:
        The registration's retry policy.
    attempt:
        The attempt that just failed (0-indexed).

    Returns
    -------
    bool
        ``True`` if another attempt is allowed.
    """
    return attempt + 1 < policy.attempts_allowed


def compute_backoff(
    attempt: int,
    base: float = 0.1,
    maximum: float = 5.0,
    jitter: bool = False,
) -> float:
    """Compute the delay before retry number *attempt* + 1.

    The delay follows exponential backoff (``base * 2^attempt``) capped at
    *maximum*.  When *jitter* is enabled the delay is randomly scaled to
    between 50 % and 100 % of its value.

    Parameters
    ----------
    attempt:
        The attempt that just failed (0-indexed).
    base:
        Base delay in seconds.
    maximum:
        Delay cap in seconds.
    jitter:
        Whether to apply random jitter.
    """
    delay = min(base * (2 ** attempt), maximum)
    if jitter:
        delay *= 0.5 + random.random() * 0.5
    return delay
