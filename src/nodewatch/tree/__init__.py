"""nodewatch.tree -- an in-memory host tree.

This sub-package provides:

* :mod:`.document` -- :class:`Document` and :class:`Element`.
* :mod:`.selector` -- the selector engine behind ``matches``/``query_all``.
* :mod:`.region` -- :class:`EmbeddedRegion` (embedded documents, isolated
  sub-trees).
* :mod:`.observer` -- :class:`TreeChangeSource`, the batched change source.
"""

from __future__ import annotations

from .document import Document, Element
from .observer import TreeChangeSource
from .region import EmbeddedRegion
from .selector import Selector, compile_selector

__all__ = [
    "Document",
    "Element",
    "EmbeddedRegion",
    "Selector",
    "TreeChangeSource",
    "compile_selector",
]
