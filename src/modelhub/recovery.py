"""Recovery layer for externally invoked operations.

:func:`with_recovery` wraps a sync or async callable so that unexpected
exceptions are logged with their traceback and surfaced as
:class:`OperationPanicError`.  Domain errors pass through untouched;
cancellation and timeouts pass through without traceback logging.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from collections.abc import Callable
from typing import Any, TypeVar, cast

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

_QUIET_MARKERS = ("context canceled", "deadline exceeded", "operation aborted")


class OperationPanicError(Exception):
    """An operation failed with an unexpected exception."""

    def __init__(self, operation: str, cause: BaseException) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"panic in {operation}: {type(cause).__name__}: {cause}")


def _is_domain_error(exc: BaseException) -> bool:
    from modelhub.inference.errors import InferenceError
    from modelhub.presets.errors import PresetsError

    return isinstance(exc, (PresetsError, InferenceError, OperationPanicError))


def is_cancellation(exc: BaseException) -> bool:
    """Return ``True`` for cancellation, timeouts and abort-like errors."""
    if isinstance(exc, (asyncio.CancelledError, TimeoutError)):
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _QUIET_MARKERS)


def _handle(operation: str, exc: Exception) -> Exception:
    if _is_domain_error(exc):
        return exc
    if is_cancellation(exc):
        logger.debug("%s cancelled: %s", operation, exc)
        return exc
    logger.error("panic in %s", operation, exc_info=exc)
    return OperationPanicError(operation, exc)


def with_recovery(fn: F) -> F:
    """Decorate *fn* with the recovery policy described in the module docstring."""
    operation = fn.__qualname__

    if inspect.iscoroutinefunction(fn):

        @functools.wraps(fn)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return await fn(*args, **kwargs)
            except Exception as exc:
                err = _handle(operation, exc)
                if err is exc:
                    raise
                raise err from exc

        return cast(F, async_wrapper)

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except Exception as exc:
            err = _handle(operation, exc)
            if err is exc:
                raise
            raise err from exc

    return cast(F, wrapper)
