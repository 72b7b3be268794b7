"""Structural interfaces for the host tree and its change sources.

nodewatch never constructs tree nodes itself; it works against whatever
object model the host provides, as long as it satisfies
:class:`ContentNode`.  Raw change notifications come from any object
satisfying :class:`ChangeSource`.  :mod:`nodewatch.tree` ships an in-memory
implementation of both.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from typing import Any, Protocol, runtime_checkable

from nodewatch.models import ChangeEvent

BatchCallback = Callable[[Sequence[ChangeEvent]], None]


@runtime_checkable
class ContentNode(Protocol):
    """An opaque handle to a node in the observed tree.

    Equality is identity: two handles are the same node only if they are
    the same object.
    """

    @property
    def parent(self) -> Any | None: ...

    @property
    def children(self) -> Sequence[Any]: ...

    @property
    def is_connected(self) -> bool:
        """``True`` while the node is attached to a live tree."""
        ...

    @property
    def region(self) -> Any | None:
        """The embedded region hosted by this node, if any."""
        ...

    def matches(self, selector: str) -> bool: ...

    def query_all(self, selector: str) -> list[Any]: ...

    def closest(self, selector: str) -> Any | None: ...

    def get_attribute(self, name: str) -> str | None: ...

    def is_visible(self) -> bool: ...


@runtime_checkable
class EmbeddedRegionLike(Protocol):
    """A sub-tree the primary change source cannot see into."""

    @property
    def kind(self) -> str: ...

    @property
    def loaded(self) -> bool: ...

    @property
    def host(self) -> Any: ...

    def content_root(self) -> Any:
        """Return the region's root node, or raise if access is denied."""
        ...

    def on_load(self, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Call *callback(region)* once loaded; return an unsubscribe function."""
        ...


@runtime_checkable
class ChangeSource(Protocol):
    """Reports batches of raw change notifications for one subscribed root.

    Batches are delivered *eventually* after a mutation, never
    synchronously inside it.
    """

    def observe(self, root: Any, callback: BatchCallback) -> None: ...

    def disconnect(self) -> None: ...

    def take_records(self) -> list[ChangeEvent]:
        """Return and clear notifications not yet delivered."""
        ...


def iter_children(node: Any) -> Iterable[Any]:
    """Children of *node*, tolerating nodes without a ``children`` attribute."""
    return getattr(node, "children", None) or ()
