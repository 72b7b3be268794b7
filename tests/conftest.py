"""Shared test fixtures for the nodewatch test suite."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any

import pytest

from nodewatch.config import WatchConfig
from nodewatch.host import ManualHost
from nodewatch.tree import Document, Element
from nodewatch.watcher import NodeWatcher


class RecordingMetricsHook:
    """A metrics backend that records all calls for assertion."""

    def __init__(self) -> None:
        self.increments: list[dict[str, Any]] = []
        self.timings: list[dict[str, Any]] = []
        self.gauges: list[dict[str, Any]] = []

    def increment(self, name: str, value: int = 1, tags: dict[str, str] | None = None) -> None:
        self.increments.append({"name": name, "value": value, "tags": tags})

    def timing(self, name: str, ms: float, tags: dict[str, str] | None = None) -> None:
        self.timings.append({"name": name, "ms": ms, "tags": tags})

    def gauge(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        self.gauges.append({"name": name, "value": value, "tags": tags})

    def names(self) -> list[str]:
        return [call["name"] for call in self.increments]


@pytest.fixture
def config() -> WatchConfig:
    """Default watcher configuration."""
    return WatchConfig()


@pytest.fixture
def host() -> ManualHost:
    """Virtual-clock host; nothing runs until the test drives it."""
    return ManualHost()


@pytest.fixture
def document() -> Document:
    """An empty in-memory document."""
    return Document()


@pytest.fixture
def watcher(document: Document, host: ManualHost, config: WatchConfig) -> Iterator[NodeWatcher]:
    """A watcher on ``document.root`` driven by ``host``; destroyed afterwards."""
    w = NodeWatcher(document.root, config=config, host=host)
    yield w
    w.destroy()


@pytest.fixture
def make(document: Document) -> Callable[..., Element]:
    """Factory for detached elements: ``make("div", cls="post", data_id="3")``.

    ``cls`` becomes the ``class`` attribute; underscores in other keyword
    names become hyphens.
    """

    def _make(tag: str = "div", cls: str | None = None, **attributes: str) -> Element:
        attrs = {k.replace("_", "-"): v for k, v in attributes.items()}
        if cls is not None:
            attrs["class"] = cls
        return document.create_element(tag, attrs)

    return _make


@pytest.fixture
def metrics_hook() -> RecordingMetricsHook:
    return RecordingMetricsHook()
