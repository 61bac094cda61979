"""Tests for the recovery decorator."""

from __future__ import annotations

import asyncio
import logging

import pytest

from modelhub.inference.errors import InferenceRequestError
from modelhub.presets.errors import ProviderNotFoundError
from modelhub.recovery import OperationPanicError, is_cancellation, with_recovery


@with_recovery
def _sync(exc: BaseException | None = None) -> str:
    if exc is not None:
        raise exc
    return "ok"


@with_recovery
async def _async(exc: BaseException | None = None) -> str:
    if exc is not None:
        raise exc
    return "ok"


class TestIsCancellation:
    def test_cancellation_types(self) -> None:
        assert is_cancellation(asyncio.CancelledError())
        assert is_cancellation(TimeoutError())

    def test_abort_like_messages(self) -> None:
        assert is_cancellation(RuntimeError("context canceled"))
        assert is_cancellation(RuntimeError("Deadline Exceeded while reading"))
        assert not is_cancellation(RuntimeError("boom"))


class TestSync:
    def test_passes_results_through(self) -> None:
        assert _sync() == "ok"
        assert _sync.__name__ == "_sync"

    def test_domain_errors_pass_through(self) -> None:
        with pytest.raises(ProviderNotFoundError):
            _sync(ProviderNotFoundError("x"))
        with pytest.raises(InferenceRequestError):
            _sync(InferenceRequestError("bad"))

    def test_unexpected_error_becomes_panic(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.ERROR, logger="modelhub.recovery"):
            with pytest.raises(OperationPanicError) as exc_info:
                _sync(ZeroDivisionError("division by zero"))

        err = exc_info.value
        assert isinstance(err.cause, ZeroDivisionError)
        assert err.__cause__ is err.cause
        assert "_sync" in err.operation
        assert "panic in" in caplog.text

    def test_timeouts_are_not_panics(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.ERROR, logger="modelhub.recovery"):
            with pytest.raises(TimeoutError):
                _sync(TimeoutError())
        assert caplog.text == ""


class TestAsync:
    async def test_passes_results_through(self) -> None:
        assert await _async() == "ok"

    async def test_unexpected_error_becomes_panic(self) -> None:
        with pytest.raises(OperationPanicError):
            await _async(KeyError("k"))

    async def test_cancellation_propagates(self) -> None:
        with pytest.raises(asyncio.CancelledError):
            await _async(asyncio.CancelledError())
