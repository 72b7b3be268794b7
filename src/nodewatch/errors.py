"""Full error hierarchy for nodewatch.

Every public error class inherits from NodewatchError. Each carries a
machine-readable ``code`` (from :class:`ErrorCode`), a human-readable
``message``, an optional structured ``context`` dict, and an optional
``cause`` (chained exception).

Errors raised at the API boundary (bad registrations, use after
``destroy()``) propagate to the caller.  Errors produced *inside* the
dispatch pipeline (handler failures, inaccessible regions) never propagate;
they are logged and, for handler failures, handed to the optional
``WatchConfig.on_handler_error`` hook.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Error code enum
# ---------------------------------------------------------------------------

class ErrorCode(str, Enum):
    """Machine-readable error codes for every error nodewatch can produce."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    SELECTOR_ERROR = "SELECTOR_ERROR"
    HANDLER_ERROR = "HANDLER_ERROR"
    RETRY_EXHAUSTED = "RETRY_EXHAUSTED"
    REGION_ACCESS = "REGION_ACCESS"
    DESTROYED = "DESTROYED"


# ---------------------------------------------------------------------------
# Base error
# ---------------------------------------------------------------------------

class NodewatchError(Exception):
    """Base exception for all nodewatch errors.

    Parameters
    ----------
    code:
        A value from :class:`ErrorCode` (or any string) identifying the
        error category.
    message:
        A developer-friendly description of what went wrong.
    context:
        Arbitrary structured data providing extra diagnostic detail.
        Keys and expected types are documented per subclass.
    cause:
        The underlying exception, if this error wraps another.
    """

    def __init__(
        self,
        code: str,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.code: str = code
        self.message: str = message
        self.context: dict[str, Any] = context or {}
        self.cause: Exception | None = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        ctx = f", context={self.context!r}" if self.context else ""
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}{ctx})"


# ---------------------------------------------------------------------------
# Registration errors
# ---------------------------------------------------------------------------

class NodewatchValidationError(NodewatchError):
    """A registration (or other API input) was rejected.

    Context keys: ``field``, ``value``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
        code: str = ErrorCode.VALIDATION_ERROR,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            context=context,
            cause=cause,
        )


class NodewatchSelectorError(NodewatchValidationError):
    """A selector string could not be parsed.

    Context keys: ``selector``, ``position``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            message=message,
            context=context,
            cause=cause,
            code=ErrorCode.SELECTOR_ERROR,
        )


class NodewatchDestroyedError(NodewatchError):
    """An operation was attempted on a watcher after ``destroy()``.

    Context keys: ``operation``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.DESTROYED,
            message=message,
            context=context,
            cause=cause,
        )


# ---------------------------------------------------------------------------
# Dispatch errors (reported, never raised out of the pipeline)
# ---------------------------------------------------------------------------

class NodewatchHandlerError(NodewatchError):
    """A watcher handler raised (or its awaitable failed) and retry is off.

    Context keys: ``registration_id``, ``priority``, ``attempts``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
        code: str = ErrorCode.HANDLER_ERROR,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            context=context,
            cause=cause,
        )


class NodewatchRetryExhaustedError(NodewatchHandlerError):
    """A retrying handler failed on every allowed attempt and was abandoned.

    Context keys: ``registration_id``, ``priority``, ``attempts``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            message=message,
            context=context,
            cause=cause,
            code=ErrorCode.RETRY_EXHAUSTED,
        )


class NodewatchRegionAccessError(NodewatchError):
    """An embedded region refused access to its content tree.

    Raised by region implementations; caught by the region monitor, which
    leaves the region unmonitored.

    Context keys: ``region_kind``, ``reason``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.REGION_ACCESS,
            message=message,
            context=context,
            cause=cause,
        )
