"""Embedded regions: sub-trees invisible to the enclosing tree's observers.

An :class:`EmbeddedRegion` models an embedded document (``kind="document"``,
an iframe) or an isolated sub-tree (``kind="isolated"``, a shadow root).
Its content is a separate :class:`~nodewatch.tree.document.Document`, so
mutations inside it never reach observers of the host document.

A region becomes observable only after :meth:`load`; a region marked
inaccessible (cross-boundary) raises from :meth:`content_root` until
:meth:`grant` is called.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Literal

from nodewatch.errors import NodewatchRegionAccessError

if TYPE_CHECKING:
    from .document import Document, Element

RegionKind = Literal["document", "isolated"]


class EmbeddedRegion:
    """A lazily loaded, possibly inaccessible sub-tree.

    Parameters
    ----------
    kind:
        ``"document"`` or ``"isolated"``.
    accessible:
        ``False`` models a cross-boundary restriction.
    """

    def __init__(self, kind: RegionKind = "document", *, accessible: bool = True) -> None:
        self.kind: RegionKind = kind
        self._accessible = accessible
        self._document: Document | None = None
        self._listeners: list[Callable[[EmbeddedRegion], None]] = []
        self._host: Element | None = None

    def __repr__(self) -> str:
        state = "loaded" if self.loaded else "pending"
        access = "" if self._accessible else ", denied"
        return f"<EmbeddedRegion {self.kind} {state}{access}>"

    @property
    def loaded(self) -> bool:
        return self._document is not None

    @property
    def accessible(self) -> bool:
        return self._accessible

    @property
    def host(self) -> Element | None:
        return self._host

    def content_root(self) -> Element | None:
        """The region's root element; ``None`` until loaded.

        Raises
        ------
        NodewatchRegionAccessError
            If the region is loaded but not accessible.
        """
        if self._document is None:
            return None
        if not self._accessible:
            raise NodewatchRegionAccessError(
                f"Access to {self.kind} region denied",
                context={"region_kind": self.kind, "reason": "cross-boundary"},
            )
        return self._document.root

    def load(self, document: Document) -> None:
        """Finish loading with *document* and notify load listeners once."""
        self._document = document
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            listener(self)

    def on_load(self, callback: Callable[[EmbeddedRegion], None]) -> Callable[[], None]:
        """Call ``callback(region)`` when loaded (immediately if already loaded).

        Returns a function that cancels the subscription.
        """
        if self.loaded:
            callback(self)
            return lambda: None
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def grant(self) -> None:
        self._accessible = True

    def deny(self) -> None:
        self._accessible = False
