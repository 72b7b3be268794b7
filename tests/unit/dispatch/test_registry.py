"""Tests for build_registration validation and CallbackRegistry matching."""

from __future__ import annotations

import pytest

from nodewatch.dispatch import CallbackRegistry, build_registration
from nodewatch.errors import NodewatchSelectorError, NodewatchValidationError
from nodewatch.models import PriorityTier, RetryPolicy


def noop(node):
    return None


# ---------------------------------------------------------------------------
# build_registration
# ---------------------------------------------------------------------------


class TestBuildRegistration:
    def test_defaults(self):
        reg = build_registration(noop, selector=".post", now=4.0)
        assert reg.priority is PriorityTier.NORMAL
        assert reg.retry == RetryPolicy(enabled=False, max_attempts=3)
        assert reg.selector == ".post"
        assert reg.page_types == frozenset()
        assert reg.dependencies == ()
        assert reg.created_at == 4.0
        assert reg.id.startswith("watch-")

    def test_generated_ids_are_unique(self):
        assert build_registration(noop, selector="a").id != build_registration(noop, selector="a").id

    def test_explicit_id(self):
        assert build_registration(noop, selector="a", id="links").id == "links"

    @pytest.mark.parametrize("bad_id", ["", 3])
    def test_bad_id(self, bad_id):
        with pytest.raises(NodewatchValidationError):
            build_registration(noop, selector="a", id=bad_id)

    def test_requires_selector_or_predicate(self):
        with pytest.raises(NodewatchValidationError) as exc_info:
            build_registration(noop)
        assert exc_info.value.context["field"] == "selector"

    def test_handler_must_be_callable(self):
        with pytest.raises(NodewatchValidationError):
            build_registration("nope", selector="a")  # type: ignore[arg-type]

    def test_predicate_must_be_callable(self):
        with pytest.raises(NodewatchValidationError):
            build_registration(noop, predicate=True)  # type: ignore[arg-type]

    def test_selector_must_be_string(self):
        with pytest.raises(NodewatchValidationError):
            build_registration(noop, selector=42)  # type: ignore[arg-type]

    def test_bad_selector(self):
        with pytest.raises(NodewatchSelectorError):
            build_registration(noop, selector="div >")

    @pytest.mark.parametrize(
        ("given", "expected"),
        [
            ("immediate", PriorityTier.IMMEDIATE),
            ("critical", PriorityTier.IMMEDIATE),
            ("HIGH", PriorityTier.HIGH),
            (PriorityTier.LOW, PriorityTier.LOW),
        ],
    )
    def test_priority_parsing(self, given, expected):
        assert build_registration(noop, selector="a", priority=given).priority is expected

    def test_unknown_priority(self):
        with pytest.raises(NodewatchValidationError) as exc_info:
            build_registration(noop, selector="a", priority="urgent")
        assert exc_info.value.context == {"field": "priority", "value": "urgent"}
        assert isinstance(exc_info.value.cause, ValueError)

    @pytest.mark.parametrize(
        ("retry", "expected"),
        [
            (None, RetryPolicy(enabled=False, max_attempts=4)),
            (False, RetryPolicy(enabled=False, max_attempts=4)),
            (True, RetryPolicy(enabled=True, max_attempts=4)),
            (2, RetryPolicy(enabled=True, max_attempts=2)),
            (RetryPolicy(enabled=True, max_attempts=9), RetryPolicy(enabled=True, max_attempts=9)),
        ],
    )
    def test_retry_coercion(self, retry, expected):
        reg = build_registration(noop, selector="a", retry=retry, default_max_attempts=4)
        assert reg.retry == expected

    @pytest.mark.parametrize("retry", [0, "yes"])
    def test_bad_retry(self, retry):
        with pytest.raises(NodewatchValidationError):
            build_registration(noop, selector="a", retry=retry)

    def test_page_types_string_is_one_type(self):
        reg = build_registration(noop, selector="a", page_types="topic")
        assert reg.page_types == frozenset({"topic"})

    def test_dependencies_validated(self):
        with pytest.raises(NodewatchSelectorError):
            build_registration(noop, selector="a", dependencies=["div >"])
        with pytest.raises(NodewatchValidationError):
            build_registration(noop, selector="a", dependencies=[42])
        reg = build_registration(noop, selector="a", dependencies=".editor")
        assert reg.dependencies == (".editor",)


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


class TestPredicates:
    def test_selector_predicate_matches_node_only(self, document, make):
        wrapper = make()
        post = make(cls="post")
        wrapper.raw_append(post)
        reg = build_registration(noop, selector=".post")
        assert reg.predicate(post)
        assert not reg.predicate(wrapper)

    def test_match_descendants_also_matches_containers(self, document, make):
        wrapper = make()
        post = make(cls="post")
        wrapper.raw_append(post)
        reg = build_registration(noop, selector=".post", match_descendants=True)
        assert reg.predicate(post)
        assert reg.predicate(wrapper)

    def test_selector_and_predicate_combine(self, make):
        hot = make(cls="post", data_hot="1")
        cold = make(cls="post")
        reg = build_registration(
            noop, selector=".post", predicate=lambda n: n.get_attribute("data-hot") == "1"
        )
        assert reg.predicate(hot)
        assert not reg.predicate(cold)


# ---------------------------------------------------------------------------
# CallbackRegistry
# ---------------------------------------------------------------------------


class TestCallbackRegistry:
    def test_add_get_remove(self):
        registry = CallbackRegistry()
        reg = build_registration(noop, selector="a", id="x")
        registry.add(reg)
        assert len(registry) == 1
        assert "x" in registry
        assert registry.get("x") is reg
        assert registry.remove("x") is True
        assert registry.remove("x") is False
        assert registry.get("x") is None

    def test_duplicate_id_rejected(self):
        registry = CallbackRegistry()
        registry.add(build_registration(noop, selector="a", id="x"))
        with pytest.raises(NodewatchValidationError):
            registry.add(build_registration(noop, selector="b", id="x"))

    def test_iteration_preserves_insertion_order(self):
        registry = CallbackRegistry()
        for name in ("c", "a", "b"):
            registry.add(build_registration(noop, selector="a", id=name))
        assert [r.id for r in registry] == ["c", "a", "b"]

    def test_matching_filters_by_predicate(self, make):
        registry = CallbackRegistry()
        registry.add(build_registration(noop, selector=".post", id="posts"))
        registry.add(build_registration(noop, selector="a", id="links"))
        post = make(cls="post")
        assert [r.id for r in registry.matching(post)] == ["posts"]

    def test_raising_predicate_is_treated_as_no_match(self, make):
        registry = CallbackRegistry()

        def boom(node):
            raise RuntimeError("bad predicate")

        registry.add(build_registration(noop, predicate=boom, id="boom"))
        registry.add(build_registration(noop, predicate=lambda n: True, id="ok"))
        assert [r.id for r in registry.matching(make())] == ["ok"]

    def test_page_types_gate(self, make):
        registry = CallbackRegistry()
        registry.add(build_registration(noop, predicate=lambda n: True, page_types=["topic"], id="t"))
        node = make()
        assert registry.matching(node, frozenset()) == []
        assert registry.matching(node, frozenset({"forum"})) == []
        assert [r.id for r in registry.matching(node, frozenset({"topic", "forum"}))] == ["t"]

    def test_selector_dependencies_checked_against_root(self, document, make):
        registry = CallbackRegistry()
        registry.add(
            build_registration(noop, predicate=lambda n: True, dependencies=[".editor"], id="d")
        )
        node = make()
        assert registry.matching(node, root=document.root) == []
        document.root.raw_append(make(cls="editor"))
        assert [r.id for r in registry.matching(node, root=document.root)] == ["d"]
        assert registry.matching(node, root=None) == []

    def test_callable_dependencies(self, make):
        registry = CallbackRegistry()
        ready = {"value": False}

        def raising():
            raise RuntimeError("not ready")

        registry.add(
            build_registration(noop, predicate=lambda n: True, dependencies=[lambda: ready["value"]], id="c")
        )
        registry.add(build_registration(noop, predicate=lambda n: True, dependencies=[raising], id="r"))
        node = make()
        assert registry.matching(node) == []
        ready["value"] = True
        assert [r.id for r in registry.matching(node)] == ["c"]

    def test_clear(self):
        registry = CallbackRegistry()
        registry.add(build_registration(noop, selector="a"))
        registry.clear()
        assert len(registry) == 0
