"""Structured JSON logger for nodewatch.

Every log record is emitted as a single-line JSON object so it can be
consumed by log aggregation pipelines without additional parsing.  Tree
nodes placed in structured fields are rendered with :func:`describe_node`
(``tag#id.class``) instead of their ``repr``.

Typical structured output::

    {"ts": "2025-07-01T12:00:00.123456+00:00", "level": "WARNING",
     "logger": "nodewatch.dispatcher", "message": "Handler failed",
     "registration_id": "badge", "node": "div#post-3.post", "attempt": 1}

Usage::

    from nodewatch.observability import get_logger

    log = get_logger("nodewatch.collector")
    log.warning("Traversal truncated", extra={"extra_fields": {"root": node}})

The default level comes from the ``NODEWATCH_LOG_LEVEL`` environment
variable and falls back to ``WARNING``: the watcher runs inside a host
process and should stay quiet unless something degrades.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

_DEFAULT_LEVEL_ENV = "NODEWATCH_LOG_LEVEL"


def describe_node(node: Any) -> str:
    """Return a short ``tag#id.class1.class2`` label for a tree node.

    Objects without a ``tag`` attribute fall back to ``str()``.
    """
    tag = getattr(node, "tag", None)
    if tag is None:
        return str(node)
    label = str(tag)
    get_attribute = getattr(node, "get_attribute", None)
    if get_attribute is not None:
        node_id = get_attribute("id")
        if node_id:
            label += f"#{node_id}"
        classes = get_attribute("class")
        if classes:
            label += "".join(f".{c}" for c in classes.split())
    return label


def _json_default(value: Any) -> Any:
    if hasattr(value, "tag"):
        return describe_node(value)
    if isinstance(value, (set, frozenset, tuple)):
        return [_json_default(v) if hasattr(v, "tag") else v for v in value]
    return str(value)


class StructuredFormatter(logging.Formatter):
    """Format log records as single-line JSON objects.

    Guaranteed keys: ``ts`` (ISO-8601 UTC), ``level``, ``logger`` and
    ``message``.  Fields passed via ``extra={"extra_fields": {...}}`` are
    merged into the top-level object; ``exc_info`` and ``stack_info`` are
    serialised when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra_fields: dict[str, Any] | None = getattr(
            record, "extra_fields", None
        )
        if extra_fields is not None:
            log_entry.update(extra_fields)

        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_entry["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(log_entry, default=_json_default)


# One handler per logger name so that ``get_logger`` is idempotent.
_configured_loggers: set[str] = set()


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        level = os.environ.get(_DEFAULT_LEVEL_ENV, "WARNING")
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        return resolved if isinstance(resolved, int) else logging.WARNING
    return level


def get_logger(
    name: str = "nodewatch",
    *,
    level: int | str | None = None,
    stream: Any | None = None,
) -> logging.Logger:
    """Get or create a structured JSON logger.

    Parameters
    ----------
    name:
        Logger name.  Components use children of ``"nodewatch"``.
    level:
        Minimum log level as an ``int`` or case-insensitive name.  ``None``
        reads ``NODEWATCH_LOG_LEVEL`` (default ``WARNING``).
    stream:
        Output stream for the handler.  Defaults to ``sys.stderr``.

    Returns
    -------
    logging.Logger
        Repeated calls with the same *name* return the same logger and do
        **not** add duplicate handlers.
    """
    logger = logging.getLogger(name)

    if name not in _configured_loggers:
        logger.setLevel(_resolve_level(level))

        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)

        # The host may have its own root handlers; never double-print.
        logger.propagate = False

        _configured_loggers.add(name)

    return logger
