"""Inline ``style`` attribute parsing."""

from __future__ import annotations

from collections.abc import Iterable


def parse_style(style: str | None) -> dict[str, str]:
    """Parse ``"display: none; color: red"`` into ``{"display": "none", ...}``.

    Property names are lower-cased; declarations without a name or value are
    dropped.  Later declarations win, as in CSS.
    """
    if not style:
        return {}
    props: dict[str, str] = {}
    for declaration in style.split(";"):
        name, sep, value = declaration.partition(":")
        name = name.strip().lower()
        value = value.strip()
        if sep and name and value:
            props[name] = value
    return props


def style_change_affects(
    old_style: str | None,
    new_style: str | None,
    properties: Iterable[str],
) -> bool:
    """Return ``True`` if any of *properties* differs between the two styles."""
    old_props = parse_style(old_style)
    new_props = parse_style(new_style)
    return any(old_props.get(p) != new_props.get(p) for p in properties)
