"""In-memory host tree: :class:`Document` and :class:`Element`.

The tree satisfies :class:`~nodewatch.protocols.ContentNode` and records
every mutation made through the regular editing API (``append``,
``insert_before``, ``remove_child``, ``set_attribute``, ``remove_attribute``,
``set_text``) as a :class:`~nodewatch.models.ChangeEvent` for the change
sources observing an enclosing subtree.

The ``raw_*`` variants perform the same edits *without* notifying
observers, modelling low-level editing paths a change source cannot see.
They are reported only to interceptors installed with
:meth:`Document.add_interceptor`, which is how an intercepting change
source recovers them.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from nodewatch.models import ChangeEvent, ChangeKind
from nodewatch.observability.logger import describe_node
from nodewatch.utils.style import parse_style

from .selector import compile_selector

if TYPE_CHECKING:
    from .region import EmbeddedRegion

Interceptor = Callable[[ChangeEvent], None]


class Document:
    """Owner of one tree.  ``document.root`` is always connected.

    Parameters
    ----------
    root_tag:
        Tag of the root element.
    """

    def __init__(self, root_tag: str = "html") -> None:
        self._observers: list[Any] = []
        self._interceptors: list[Interceptor] = []
        self.root = Element(root_tag, owner=self)

    def create_element(
        self,
        tag: str,
        attributes: Mapping[str, str] | None = None,
        text: str = "",
        children: list[Element] | None = None,
    ) -> Element:
        """Create a detached element owned by this document.

        *children* are attached without notification; the subtree is
        reported as a whole when it is inserted into the connected tree.
        """
        element = Element(tag, attributes, text, owner=self)
        for child in children or ():
            element._insert(child, None, notify=False)
        return element

    # -- Observation --------------------------------------------------------

    def add_observer(self, observer: Any) -> None:
        """Register an object with ``covers(node)`` and ``enqueue(event)``."""
        if observer not in self._observers:
            self._observers.append(observer)

    def remove_observer(self, observer: Any) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def add_interceptor(self, interceptor: Interceptor) -> None:
        if interceptor not in self._interceptors:
            self._interceptors.append(interceptor)

    def remove_interceptor(self, interceptor: Interceptor) -> None:
        if interceptor in self._interceptors:
            self._interceptors.remove(interceptor)

    def _record(self, event: ChangeEvent, notify: bool) -> None:
        if notify:
            for observer in list(self._observers):
                if observer.covers(event.target):
                    observer.enqueue(event)
        else:
            for interceptor in list(self._interceptors):
                interceptor(event)


class Element:
    """A tree node with a tag, attributes, text and ordered children.

    Parameters
    ----------
    tag:
        Element name; stored lower-cased.
    attributes:
        Initial attributes; names are lower-cased.
    text:
        Own text content.
    owner:
        The :class:`Document` whose observers see this element's mutations.
    """

    __slots__ = ("__weakref__", "_attributes", "_children", "_parent", "_region", "_text", "owner", "tag")

    def __init__(
        self,
        tag: str,
        attributes: Mapping[str, str] | None = None,
        text: str = "",
        *,
        owner: Document | None = None,
    ) -> None:
        self.tag: str = tag.lower()
        self._attributes: dict[str, str] = {
            k.lower(): str(v) for k, v in (attributes or {}).items()
        }
        self._text = text
        self._children: list[Element] = []
        self._parent: Element | None = None
        self._region: EmbeddedRegion | None = None
        self.owner = owner

    def __repr__(self) -> str:
        return f"<Element {describe_node(self)}>"

    # -- ContentNode surface ------------------------------------------------

    @property
    def parent(self) -> Element | None:
        return self._parent

    @property
    def children(self) -> tuple[Element, ...]:
        return tuple(self._children)

    @property
    def text(self) -> str:
        return self._text

    @property
    def attributes(self) -> Mapping[str, str]:
        return MappingProxyType(self._attributes)

    @property
    def is_connected(self) -> bool:
        node = self
        while node._parent is not None:
            node = node._parent
        return self.owner is not None and node is self.owner.root

    @property
    def region(self) -> EmbeddedRegion | None:
        return self._region

    def get_attribute(self, name: str) -> str | None:
        return self._attributes.get(name.lower())

    def has_attribute(self, name: str) -> bool:
        return name.lower() in self._attributes

    def matches(self, selector: str) -> bool:
        return compile_selector(selector).matches(self)

    def closest(self, selector: str) -> Element | None:
        compiled = compile_selector(selector)
        node: Element | None = self
        while node is not None:
            if compiled.matches(node):
                return node
            node = node._parent
        return None

    def iter_descendants(self) -> Iterator[Element]:
        """Pre-order descendants, excluding ``self``."""
        stack = list(reversed(self._children))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node._children))

    def query_all(self, selector: str) -> list[Element]:
        compiled = compile_selector(selector)
        return [node for node in self.iter_descendants() if compiled.matches(node)]

    def query_one(self, selector: str) -> Element | None:
        compiled = compile_selector(selector)
        return next((n for n in self.iter_descendants() if compiled.matches(n)), None)

    def is_visible(self) -> bool:
        """``False`` if this element or an ancestor is hidden.

        Hidden means a ``hidden`` attribute, ``display: none`` or
        ``visibility: hidden``.
        """
        node: Element | None = self
        while node is not None:
            if "hidden" in node._attributes:
                return False
            style = parse_style(node._attributes.get("style"))
            if style.get("display") == "none" or style.get("visibility") == "hidden":
                return False
            node = node._parent
        return True

    # -- Embedded regions ---------------------------------------------------

    def attach_region(self, region: EmbeddedRegion) -> EmbeddedRegion:
        """Make this element the host of *region* (an iframe or shadow host)."""
        self._region = region
        region._host = self
        return region

    # -- Observed editing ---------------------------------------------------

    def append(self, child: Element) -> Element:
        return self._insert(child, None, notify=True)

    def insert_before(self, child: Element, reference: Element | None) -> Element:
        return self._insert(child, reference, notify=True)

    def remove_child(self, child: Element) -> Element:
        return self._remove(child, notify=True)

    def detach(self) -> None:
        """Remove this element from its parent, if any."""
        if self._parent is not None:
            self._parent._remove(self, notify=True)

    def set_attribute(self, name: str, value: str) -> None:
        self._set_attribute(name, value, notify=True)

    def remove_attribute(self, name: str) -> None:
        self._remove_attribute(name, notify=True)

    def set_text(self, text: str) -> None:
        self._set_text(text, notify=True)

    # -- Unobserved editing -------------------------------------------------

    def raw_append(self, child: Element) -> Element:
        return self._insert(child, None, notify=False)

    def raw_insert_before(self, child: Element, reference: Element | None) -> Element:
        return self._insert(child, reference, notify=False)

    def raw_remove_child(self, child: Element) -> Element:
        return self._remove(child, notify=False)

    def raw_set_attribute(self, name: str, value: str) -> None:
        self._set_attribute(name, value, notify=False)

    def raw_set_text(self, text: str) -> None:
        self._set_text(text, notify=False)

    # -- Internals ----------------------------------------------------------

    def _emit(self, event: ChangeEvent, notify: bool) -> None:
        if self.owner is not None:
            self.owner._record(event, notify)

    def _insert(self, child: Element, reference: Element | None, *, notify: bool) -> Element:
        node: Element | None = self
        while node is not None:
            if node is child:
                raise ValueError(f"cannot insert {child!r} into its own subtree")
            node = node._parent
        if reference is not None and reference._parent is not self:
            raise ValueError(f"{reference!r} is not a child of {self!r}")
        if child._parent is not None:
            child._parent._remove(child, notify=notify)
        index = len(self._children) if reference is None else self._children.index(reference)
        self._children.insert(index, child)
        child._parent = self
        self._adopt(child)
        self._emit(ChangeEvent(self, ChangeKind.INSERT, added_nodes=(child,)), notify)
        return child

    def _adopt(self, child: Element) -> None:
        if child.owner is self.owner:
            return
        child.owner = self.owner
        for descendant in child.iter_descendants():
            descendant.owner = self.owner

    def _remove(self, child: Element, *, notify: bool) -> Element:
        if child._parent is not self:
            raise ValueError(f"{child!r} is not a child of {self!r}")
        self._children.remove(child)
        child._parent = None
        self._emit(ChangeEvent(self, ChangeKind.REMOVE, removed_nodes=(child,)), notify)
        return child

    def _set_attribute(self, name: str, value: str, *, notify: bool) -> None:
        key = name.lower()
        old = self._attributes.get(key)
        self._attributes[key] = str(value)
        self._emit(
            ChangeEvent(self, ChangeKind.ATTRIBUTE, attribute_name=key, old_value=old),
            notify,
        )

    def _remove_attribute(self, name: str, *, notify: bool) -> None:
        key = name.lower()
        if key not in self._attributes:
            return
        old = self._attributes.pop(key)
        self._emit(
            ChangeEvent(self, ChangeKind.ATTRIBUTE, attribute_name=key, old_value=old),
            notify,
        )

    def _set_text(self, text: str, *, notify: bool) -> None:
        old = self._text
        self._text = text
        self._emit(ChangeEvent(self, ChangeKind.TEXT, old_value=old), notify)
