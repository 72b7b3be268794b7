"""A small CSS-like selector engine for :mod:`nodewatch.tree`.

Supported syntax:

* type (``div``) and universal (``*``) selectors;
* ``#id`` and ``.class``;
* attribute selectors ``[attr]``, ``[attr=v]``, ``[attr~=v]``,
  ``[attr*=v]``, ``[attr^=v]``, ``[attr$=v]`` (values bare or quoted);
* descendant (whitespace) and child (``>``) combinators;
* comma-separated selector lists.

Compiled selectors are cached, so calling :func:`compile_selector` in a hot
path is cheap.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from nodewatch.errors import NodewatchSelectorError

_IDENT = r"-?[_a-zA-Z][_a-zA-Z0-9-]*"

_TOKEN_RE = re.compile(
    rf"""
    (?P<ws>\s+)
    | (?P<comma>,)
    | (?P<child>>)
    | (?P<star>\*)
    | \#(?P<id>{_IDENT})
    | \.(?P<cls>{_IDENT})
    | (?P<tag>{_IDENT})
    | \[\s*(?P<aname>{_IDENT})\s*
        (?:(?P<op>[~*^$]?=)\s*(?P<aval>"[^"]*"|'[^']*'|[^\]\s"']+)\s*)?
      \]
    """,
    re.VERBOSE,
)


@dataclass
class _Compound:
    """A sequence of simple selectors with no combinator between them."""

    tag: str | None = None
    ids: list[str] = field(default_factory=list)
    classes: list[str] = field(default_factory=list)
    attrs: list[tuple[str, str | None, str | None]] = field(default_factory=list)

    def is_empty(self) -> bool:
        return self.tag is None and not (self.ids or self.classes or self.attrs)

    def matches(self, node: Any) -> bool:
        if self.tag is not None and self.tag != "*" and getattr(node, "tag", None) != self.tag:
            return False
        get = node.get_attribute
        for ident in self.ids:
            if get("id") != ident:
                return False
        if self.classes:
            present = (get("class") or "").split()
            for cls in self.classes:
                if cls not in present:
                    return False
        for name, op, expected in self.attrs:
            actual = get(name)
            if actual is None or not _attr_matches(actual, op, expected):
                return False
        return True


def _attr_matches(actual: str, op: str | None, expected: str | None) -> bool:
    if op is None:
        return True
    assert expected is not None
    if op == "=":
        return actual == expected
    if op == "~=":
        return expected in actual.split()
    if not expected:
        return False
    if op == "*=":
        return expected in actual
    if op == "^=":
        return actual.startswith(expected)
    return actual.endswith(expected)


# A complex selector: (combinator-to-previous, compound) pairs, left to right.
_Steps = tuple[tuple[str, _Compound], ...]


class Selector:
    """A compiled selector list.  Use :func:`compile_selector` to build one."""

    __slots__ = ("_groups", "text")

    def __init__(self, text: str, groups: tuple[_Steps, ...]) -> None:
        self.text = text
        self._groups = groups

    def matches(self, node: Any) -> bool:
        """``True`` if *node* matches any selector in the list."""
        return any(_match_steps(steps, len(steps) - 1, node) for steps in self._groups)

    def __repr__(self) -> str:
        return f"Selector({self.text!r})"


def _match_steps(steps: _Steps, index: int, node: Any) -> bool:
    combinator, compound = steps[index]
    if not compound.matches(node):
        return False
    if index == 0:
        return True
    if combinator == ">":
        parent = node.parent
        return parent is not None and _match_steps(steps, index - 1, parent)
    ancestor = node.parent
    while ancestor is not None:
        if _match_steps(steps, index - 1, ancestor):
            return True
        ancestor = ancestor.parent
    return False


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


@lru_cache(maxsize=512)
def compile_selector(text: str) -> Selector:
    """Parse *text* into a :class:`Selector`.

    Raises
    ------
    NodewatchSelectorError
        If *text* is empty or malformed.
    """
    source = text.strip()
    if not source:
        raise NodewatchSelectorError("Empty selector", context={"selector": text})

    def fail(reason: str, position: int) -> NodewatchSelectorError:
        return NodewatchSelectorError(
            f"Invalid selector {text!r}: {reason} at position {position}",
            context={"selector": text, "position": position},
        )

    groups: list[_Steps] = []
    steps: list[tuple[str, _Compound]] = []
    compound: _Compound | None = None
    combinator = ""
    after_ws = False
    expect_compound = False

    pos = 0
    while pos < len(source):
        m = _TOKEN_RE.match(source, pos)
        if m is None:
            raise fail("unexpected character", pos)
        start, pos = pos, m.end()

        if m.group("ws") is not None:
            after_ws = True
            continue

        if m.group("comma") is not None or m.group("child") is not None:
            if compound is not None:
                steps.append((combinator, compound))
                compound = None
            if not steps or expect_compound:
                raise fail("missing selector", start)
            if m.group("comma") is not None:
                groups.append(tuple(steps))
                steps = []
                combinator = ""
            else:
                combinator = ">"
            after_ws = False
            expect_compound = True
            continue

        # A simple selector: starts or extends a compound.
        if compound is not None and after_ws:
            steps.append((combinator, compound))
            combinator = " "
            compound = None
        if compound is None:
            compound = _Compound()
        after_ws = False
        expect_compound = False

        if m.group("star") is not None or m.group("tag") is not None:
            if not compound.is_empty():
                raise fail("type selector must come first", start)
            compound.tag = "*" if m.group("star") is not None else m.group("tag").lower()
        elif m.group("id") is not None:
            compound.ids.append(m.group("id"))
        elif m.group("cls") is not None:
            compound.classes.append(m.group("cls"))
        else:
            op = m.group("op")
            value = _unquote(m.group("aval")) if op is not None else None
            compound.attrs.append((m.group("aname").lower(), op, value))

    if compound is not None:
        steps.append((combinator, compound))
    if expect_compound or not steps:
        raise fail("dangling combinator", len(source))
    groups.append(tuple(steps))
    return Selector(text, tuple(groups))
