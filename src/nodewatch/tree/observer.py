"""Change source for :mod:`nodewatch.tree` documents.

:class:`TreeChangeSource` behaves like a browser mutation observer: it
records every observed mutation under its root and hands the accumulated
batch to its callback at the next host yield point, never synchronously
inside the mutation.

With ``intercept=True`` it also installs an interceptor on the document so
that ``raw_*`` edits (which bypass observers) are reported too.  This is an
optional capability; nothing in nodewatch depends on it for correctness.
"""

from __future__ import annotations

from typing import Any

from nodewatch.host import HostScheduler, TimerHandle
from nodewatch.models import ChangeEvent
from nodewatch.protocols import BatchCallback


class TreeChangeSource:
    """Batched mutation reports for one subtree of a tree document.

    Parameters
    ----------
    host:
        Scheduler used to deliver batches asynchronously.
    intercept:
        Also report edits made through the unobserved ``raw_*`` API.
    """

    def __init__(self, host: HostScheduler, *, intercept: bool = False) -> None:
        self._host = host
        self._intercept = intercept
        self._root: Any | None = None
        self._callback: BatchCallback | None = None
        self._records: list[ChangeEvent] = []
        self._delivery: TimerHandle | None = None

    @property
    def root(self) -> Any | None:
        return self._root

    @property
    def intercepts(self) -> bool:
        return self._intercept

    def observe(self, root: Any, callback: BatchCallback) -> None:
        """Start reporting mutations under *root* (inclusive) to *callback*."""
        if self._root is not None:
            self.disconnect()
        document = root.owner
        if document is None:
            raise ValueError(f"{root!r} has no owning document")
        self._root = root
        self._callback = callback
        document.add_observer(self)
        if self._intercept:
            document.add_interceptor(self._on_intercepted)

    def disconnect(self) -> None:
        """Stop reporting and drop undelivered records."""
        if self._root is not None:
            document = self._root.owner
            if document is not None:
                document.remove_observer(self)
                document.remove_interceptor(self._on_intercepted)
        self._root = None
        self._callback = None
        self._records = []
        if self._delivery is not None:
            self._delivery.cancel()
            self._delivery = None

    def take_records(self) -> list[ChangeEvent]:
        records, self._records = self._records, []
        if self._delivery is not None:
            self._delivery.cancel()
            self._delivery = None
        return records

    # -- Document observer interface ---------------------------------------

    def covers(self, node: Any) -> bool:
        """``True`` if *node* is the observed root or one of its descendants."""
        root = self._root
        while node is not None:
            if node is root:
                return True
            node = node.parent
        return False

    def enqueue(self, event: ChangeEvent) -> None:
        self._records.append(event)
        if self._delivery is None:
            self._delivery = self._host.call_soon(self._deliver)

    def _on_intercepted(self, event: ChangeEvent) -> None:
        if self.covers(event.target):
            self.enqueue(event)

    def _deliver(self) -> None:
        self._delivery = None
        batch, self._records = self._records, []
        if batch and self._callback is not None:
            self._callback(batch)
