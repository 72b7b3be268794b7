"""Host scheduler primitives.

Everything nodewatch does happens on one logical thread, driven by a
:class:`HostScheduler`: "run this at the next yield point", "run this
after a delay", "what time is it", and "drive this awaitable".  Two
implementations are provided:

* :class:`AsyncioHost` -- backed by an asyncio event loop.  Production use.
* :class:`ManualHost` -- a virtual clock advanced explicitly by the caller.
  Makes every ordering deterministic, which is what the test suite uses.

Usage::

    host = ManualHost()
    watcher = NodeWatcher(document.root, host=host)
    watcher.start()
    host.run_until_idle()   # deliver pending batches, run drains
    host.advance(0.1)       # let LOW-tier handlers fire
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from collections.abc import Awaitable, Callable, Generator
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class TimerHandle(Protocol):
    """A scheduled callback that can be cancelled."""

    def cancel(self) -> None: ...

    def cancelled(self) -> bool: ...


@runtime_checkable
class HostScheduler(Protocol):
    """The cooperative scheduling surface nodewatch runs on."""

    def time(self) -> float:
        """Current host time in seconds (monotonic)."""
        ...

    def call_soon(self, callback: Callable[[], Any]) -> TimerHandle:
        """Run *callback* at the next yield point."""
        ...

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle:
        """Run *callback* after *delay* seconds."""
        ...

    def spawn(self, awaitable: Awaitable[Any]) -> Any:
        """Drive *awaitable*; return a future-like with ``add_done_callback``."""
        ...

    def sleep(self, delay: float) -> Awaitable[None]:
        """An awaitable that completes after *delay* seconds of host time."""
        ...


# ---------------------------------------------------------------------------
# asyncio
# ---------------------------------------------------------------------------

class AsyncioHost:
    """Host backed by an asyncio event loop.

    Parameters
    ----------
    loop:
        The loop to schedule on.  ``None`` resolves the running loop at each
        call, so the watcher must be used from inside a running loop.
    """

    __slots__ = ("_loop",)

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop if self._loop is not None else asyncio.get_running_loop()

    def time(self) -> float:
        return self.loop.time()

    def call_soon(self, callback: Callable[[], Any]) -> asyncio.Handle:
        return self.loop.call_soon(callback)

    def call_later(self, delay: float, callback: Callable[[], Any]) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay), callback)

    def spawn(self, awaitable: Awaitable[Any]) -> asyncio.Future[Any]:
        return asyncio.ensure_future(awaitable, loop=self.loop)

    def sleep(self, delay: float) -> Awaitable[None]:
        return asyncio.sleep(delay)


# ---------------------------------------------------------------------------
# Virtual clock
# ---------------------------------------------------------------------------

class _ManualTimer:
    __slots__ = ("_cancelled", "_fired", "_host", "callback", "when")

    def __init__(self, host: ManualHost, when: float, callback: Callable[[], Any]) -> None:
        self._host = host
        self.when = when
        self.callback = callback
        self._cancelled = False
        self._fired = False

    def cancel(self) -> None:
        if not self._cancelled and not self._fired:
            self._cancelled = True
            self._host._live -= 1

    def cancelled(self) -> bool:
        return self._cancelled


class _ManualSleep:
    """Awaitable yielded to :class:`ManualHost` to request a timed resume."""

    __slots__ = ("delay",)

    def __init__(self, delay: float) -> None:
        self.delay = delay

    def __await__(self) -> Generator[Any, None, None]:
        yield self


class ManualFuture:
    """Minimal future returned by :meth:`ManualHost.spawn`."""

    __slots__ = ("_callbacks", "_done", "_exception", "_result")

    def __init__(self) -> None:
        self._done = False
        self._result: Any = None
        self._exception: BaseException | None = None
        self._callbacks: list[Callable[[ManualFuture], Any]] = []

    def done(self) -> bool:
        return self._done

    def cancelled(self) -> bool:
        return False

    def result(self) -> Any:
        if not self._done:
            raise RuntimeError("result is not ready")
        if self._exception is not None:
            raise self._exception
        return self._result

    def exception(self) -> BaseException | None:
        if not self._done:
            raise RuntimeError("result is not ready")
        return self._exception

    def add_done_callback(self, fn: Callable[[ManualFuture], Any]) -> None:
        if self._done:
            fn(self)
        else:
            self._callbacks.append(fn)

    def _finish(self, result: Any = None, exception: BaseException | None = None) -> None:
        self._done = True
        self._result = result
        self._exception = exception
        callbacks, self._callbacks = self._callbacks, []
        for fn in callbacks:
            fn(self)


class ManualHost:
    """Deterministic host with a virtual clock.

    Nothing runs until the caller calls :meth:`run_until_idle` or
    :meth:`advance`.  Timers due at the same instant run in scheduling
    order.  Coroutines handed to :meth:`spawn` are stepped one host tick
    at a time; they may await ``asyncio.sleep(0)``, :meth:`sleep`, or
    other such coroutines, but not real asyncio futures.

    Parameters
    ----------
    start:
        Initial clock value.
    """

    def __init__(self, start: float = 0.0) -> None:
        self.now: float = start
        self._queue: list[tuple[float, int, _ManualTimer]] = []
        self._seq = itertools.count()
        self._live = 0

    # -- HostScheduler ------------------------------------------------------

    def time(self) -> float:
        return self.now

    def call_soon(self, callback: Callable[[], Any]) -> _ManualTimer:
        return self.call_later(0.0, callback)

    def call_later(self, delay: float, callback: Callable[[], Any]) -> _ManualTimer:
        timer = _ManualTimer(self, self.now + max(0.0, delay), callback)
        heapq.heappush(self._queue, (timer.when, next(self._seq), timer))
        self._live += 1
        return timer

    def spawn(self, awaitable: Awaitable[Any]) -> ManualFuture:
        future = ManualFuture()
        iterator = awaitable.__await__()

        def step() -> None:
            try:
                yielded = iterator.send(None)
            except StopIteration as stop:
                future._finish(result=stop.value)
                return
            except Exception as exc:
                future._finish(exception=exc)
                return
            if yielded is None:
                self.call_soon(step)
            elif isinstance(yielded, _ManualSleep):
                self.call_later(yielded.delay, step)
            else:
                iterator.close()
                future._finish(
                    exception=RuntimeError(
                        f"ManualHost cannot drive awaitables that wait on {type(yielded).__name__}"
                    )
                )

        self.call_soon(step)
        return future

    def sleep(self, delay: float) -> Awaitable[None]:
        return _ManualSleep(delay)

    # -- Driving ------------------------------------------------------------

    def pending_count(self) -> int:
        """Number of scheduled, not yet fired, not cancelled timers."""
        return self._live

    def run_until_idle(self, limit: int = 100_000) -> int:
        """Run every timer due at the current time, including ones they add.

        Returns the number of callbacks run.  Raises ``RuntimeError`` after
        *limit* callbacks, which indicates a self-rescheduling loop.
        """
        return self._run(None, limit)

    def advance(self, seconds: float, limit: int = 100_000) -> int:
        """Move the clock forward by *seconds*, firing timers in due order."""
        if seconds < 0:
            raise ValueError(f"cannot move the clock backwards ({seconds})")
        ran = self._run(self.now + seconds, limit)
        return ran

    def step(self) -> bool:
        """Run the single earliest timer due at the current time, if any."""
        while self._queue and self._queue[0][0] <= self.now:
            _, _, timer = heapq.heappop(self._queue)
            if timer._cancelled:
                continue
            timer._fired = True
            self._live -= 1
            timer.callback()
            return True
        return False

    def _run(self, until: float | None, limit: int) -> int:
        # until=None follows the clock, which callbacks may move forward.
        ran = 0
        while self._queue and self._queue[0][0] <= (self.now if until is None else until):
            when, _, timer = heapq.heappop(self._queue)
            if timer._cancelled:
                continue
            self.now = max(self.now, when)
            timer._fired = True
            self._live -= 1
            timer.callback()
            ran += 1
            if ran >= limit:
                raise RuntimeError(f"ManualHost ran {limit} callbacks without going idle")
        if until is not None:
            self.now = max(self.now, until)
        return ran
