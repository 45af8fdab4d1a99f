"""
tests/test_signals.py – FailureSignal and run_cancellable.

All tests run offline.
"""

from __future__ import annotations

import asyncio

import pytest

from grvt_transport.errors import RequestCancelledError
from grvt_transport.signals import FailureSignal, run_cancellable


class TestFailureSignal:
    def test_fires_once(self) -> None:
        signal  = FailureSignal()
        reasons: list[BaseException] = []
        signal.add_callback(reasons.append)

        first = RuntimeError("first")
        signal.fire(first)
        signal.fire(RuntimeError("second"))

        assert signal.failed
        assert signal.reason is first
        assert reasons == [first]

    def test_late_callback_called_immediately(self) -> None:
        signal = FailureSignal()
        signal.fire(RuntimeError("x"))

        reasons: list[BaseException] = []
        signal.add_callback(reasons.append)
        assert len(reasons) == 1

    def test_removed_callback_not_called(self) -> None:
        signal  = FailureSignal()
        reasons: list[BaseException] = []
        signal.add_callback(reasons.append)
        signal.remove_callback(reasons.append)

        signal.fire(RuntimeError("x"))
        assert reasons == []

    def test_raising_callback_is_contained(self) -> None:
        signal  = FailureSignal()
        reasons: list[BaseException] = []

        def broken(_: BaseException) -> None:
            raise ValueError("boom")

        signal.add_callback(broken)
        signal.add_callback(reasons.append)
        signal.fire(RuntimeError("x"))
        assert len(reasons) == 1

    @pytest.mark.asyncio
    async def test_wait(self) -> None:
        signal = FailureSignal()
        reason = RuntimeError("x")
        asyncio.get_running_loop().call_later(0.01, signal.fire, reason)

        assert await asyncio.wait_for(signal.wait(), timeout=1.0) is reason


class TestRunCancellable:
    @pytest.mark.asyncio
    async def test_no_event(self) -> None:
        async def op() -> int:
            return 42

        assert await run_cancellable(op(), None, "cancelled") == 42

    @pytest.mark.asyncio
    async def test_operation_wins(self) -> None:
        async def op() -> int:
            return 7

        assert await run_cancellable(op(), asyncio.Event(), "cancelled") == 7

    @pytest.mark.asyncio
    async def test_operation_error_propagates(self) -> None:
        async def op() -> None:
            raise KeyError("k")

        with pytest.raises(KeyError):
            await run_cancellable(op(), asyncio.Event(), "cancelled")

    @pytest.mark.asyncio
    async def test_cancel_wins_and_tears_down(self) -> None:
        started   = asyncio.Event()
        cancelled = asyncio.Event()

        async def op() -> None:
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, cancel.set)

        with pytest.raises(RequestCancelledError, match="stop"):
            await run_cancellable(op(), cancel, "stop")
        await asyncio.wait_for(cancelled.wait(), timeout=1.0)
        assert started.is_set()

    @pytest.mark.asyncio
    async def test_already_set(self) -> None:
        cancel = asyncio.Event()
        cancel.set()

        async def op() -> int:
            return 1

        with pytest.raises(RequestCancelledError):
            await run_cancellable(op(), cancel, "cancelled")
