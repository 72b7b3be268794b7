"""Callback registry: validated, immutable watcher registrations.

:func:`build_registration` turns the keyword arguments of
:meth:`NodeWatcher.register` into a frozen :class:`CallbackRegistration`,
raising typed validation errors for anything malformed.
:class:`CallbackRegistry` stores registrations and answers "which of them
apply to this node right now".
"""

from __future__ import annotations

import itertools
from collections.abc import Callable, Iterable, Iterator
from typing import Any

from nodewatch.errors import NodewatchValidationError
from nodewatch.models import CallbackRegistration, PriorityTier, RetryPolicy
from nodewatch.observability import get_logger
from nodewatch.tree.selector import compile_selector

log = get_logger("nodewatch.registry")

_ids = itertools.count(1)


# ---------------------------------------------------------------------------
# Construction and validation
# ---------------------------------------------------------------------------

def _selector_predicate(selector: str, match_descendants: bool) -> Callable[[Any], bool]:
    if match_descendants:
        return lambda node: node.matches(selector) or bool(node.query_all(selector))
    return lambda node: node.matches(selector)


def _coerce_retry(retry: Any, default_max_attempts: int) -> RetryPolicy:
    if retry is None or retry is False:
        return RetryPolicy(enabled=False, max_attempts=default_max_attempts)
    if retry is True:
        return RetryPolicy(enabled=True, max_attempts=default_max_attempts)
    if isinstance(retry, RetryPolicy):
        return retry
    if isinstance(retry, int):
        if retry < 1:
            raise NodewatchValidationError(
                f"retry attempts must be >= 1, got {retry}",
                context={"field": "retry", "value": retry},
            )
        return RetryPolicy(enabled=True, max_attempts=retry)
    raise NodewatchValidationError(
        f"retry must be a bool, an int or a RetryPolicy, got {type(retry).__name__}",
        context={"field": "retry", "value": retry},
    )


def _coerce_dependencies(dependencies: Iterable[Any] | None) -> tuple[Any, ...]:
    if dependencies is None:
        return ()
    if isinstance(dependencies, str) or callable(dependencies):
        dependencies = [dependencies]
    result: list[Any] = []
    for dep in dependencies:
        if isinstance(dep, str):
            compile_selector(dep)
        elif not callable(dep):
            raise NodewatchValidationError(
                "dependencies must be selector strings or callables",
                context={"field": "dependencies", "value": dep},
            )
        result.append(dep)
    return tuple(result)


def build_registration(
    handler: Callable[[Any], Any],
    *,
    selector: str | None = None,
    predicate: Callable[[Any], bool] | None = None,
    priority: PriorityTier | str = PriorityTier.NORMAL,
    page_types: Iterable[str] | None = None,
    dependencies: Iterable[Any] | None = None,
    retry: Any = None,
    id: str | None = None,
    match_descendants: bool = False,
    default_max_attempts: int = 3,
    now: float = 0.0,
) -> CallbackRegistration:
    """Validate register() arguments and build the registration record.

    When both *selector* and *predicate* are given a node must satisfy
    both; the selector alone drives the catch-up scan.

    Raises
    ------
    NodewatchValidationError
        Missing or malformed arguments.
    NodewatchSelectorError
        A selector or selector dependency does not parse.
    """
    if not callable(handler):
        raise NodewatchValidationError(
            "handler must be callable",
            context={"field": "handler", "value": handler},
        )
    if selector is None and predicate is None:
        raise NodewatchValidationError(
            "a registration needs a selector or a predicate",
            context={"field": "selector", "value": None},
        )
    if predicate is not None and not callable(predicate):
        raise NodewatchValidationError(
            "predicate must be callable",
            context={"field": "predicate", "value": predicate},
        )
    if selector is not None:
        if not isinstance(selector, str):
            raise NodewatchValidationError(
                "selector must be a string",
                context={"field": "selector", "value": selector},
            )
        compile_selector(selector)

    try:
        tier = PriorityTier.parse(priority)
    except ValueError as exc:
        raise NodewatchValidationError(
            f"unknown priority {priority!r}",
            context={"field": "priority", "value": priority},
            cause=exc,
        ) from exc

    if isinstance(page_types, str):
        page_types = [page_types]
    types = frozenset(page_types or ())

    if id is not None and (not isinstance(id, str) or not id):
        raise NodewatchValidationError(
            "id must be a non-empty string",
            context={"field": "id", "value": id},
        )

    if selector is not None:
        by_selector = _selector_predicate(selector, match_descendants)
        if predicate is not None:
            custom = predicate
            final: Callable[[Any], bool] = lambda node: by_selector(node) and bool(custom(node))
        else:
            final = by_selector
    else:
        final = predicate  # type: ignore[assignment]

    return CallbackRegistration(
        id=id if id is not None else f"watch-{next(_ids)}",
        predicate=final,
        priority=tier,
        handler=handler,
        retry=_coerce_retry(retry, default_max_attempts),
        selector=selector,
        page_types=types,
        dependencies=_coerce_dependencies(dependencies),
        match_descendants=match_descendants,
        created_at=now,
    )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class CallbackRegistry:
    """Registrations in insertion order, keyed by id."""

    def __init__(self) -> None:
        self._registrations: dict[str, CallbackRegistration] = {}

    def __len__(self) -> int:
        return len(self._registrations)

    def __iter__(self) -> Iterator[CallbackRegistration]:
        return iter(list(self._registrations.values()))

    def __contains__(self, registration_id: str) -> bool:
        return registration_id in self._registrations

    def add(self, registration: CallbackRegistration) -> None:
        """Store *registration*.

        Raises
        ------
        NodewatchValidationError
            If a registration with the same id exists.
        """
        if registration.id in self._registrations:
            raise NodewatchValidationError(
                f"registration id {registration.id!r} already in use",
                context={"field": "id", "value": registration.id},
            )
        self._registrations[registration.id] = registration

    def remove(self, registration_id: str) -> bool:
        return self._registrations.pop(registration_id, None) is not None

    def get(self, registration_id: str) -> CallbackRegistration | None:
        return self._registrations.get(registration_id)

    def clear(self) -> None:
        self._registrations.clear()

    def matching(
        self,
        node: Any,
        page_types: frozenset[str] = frozenset(),
        root: Any = None,
    ) -> list[CallbackRegistration]:
        """Registrations that apply to *node* under the current page state."""
        result: list[CallbackRegistration] = []
        for registration in self._registrations.values():
            if registration.page_types and not (registration.page_types & page_types):
                continue
            if registration.dependencies and not self._dependencies_met(registration, root):
                continue
            if self._evaluate(registration, node):
                result.append(registration)
        return result

    @staticmethod
    def _evaluate(registration: CallbackRegistration, node: Any) -> bool:
        try:
            return bool(registration.predicate(node))
        except Exception as exc:
            log.warning(
                "Predicate raised; treating node as not matching",
                extra={
                    "extra_fields": {
                        "op": "match",
                        "registration_id": registration.id,
                        "node": node,
                        "error": repr(exc),
                    }
                },
            )
            return False

    @staticmethod
    def _dependencies_met(registration: CallbackRegistration, root: Any) -> bool:
        for dep in registration.dependencies:
            if isinstance(dep, str):
                if root is None or not (root.matches(dep) or root.query_all(dep)):
                    return False
                continue
            try:
                if not dep():
                    return False
            except Exception as exc:
                log.debug(
                    "Dependency check raised",
                    extra={
                        "extra_fields": {
                            "op": "dependency",
                            "registration_id": registration.id,
                            "error": repr(exc),
                        }
                    },
                )
                return False
        return True
