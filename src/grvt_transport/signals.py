"""
signals.py – Failure signals and caller-driven cancellation.

Two small asyncio primitives shared by the transports:

  FailureSignal      one-shot "this subscription broke" notification handed
                     to subscribers; fired when a resubscribe after reconnect
                     is rejected.
  run_cancellable    awaits an operation unless the caller's cancel event
                     fires first, in which case RequestCancelledError is raised
                     and the operation is torn down.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional, TypeVar

from .errors import RequestCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FailureSignal:
    """
    Fires at most once, carrying the exception that caused the failure.

        sub = await ws.subscribe("ticker.s", feed, on_ticker)
        sub.failure_signal.add_callback(lambda exc: print("lost:", exc))
        await sub.failure_signal.wait()
    """

    def __init__(self) -> None:
        self._reason:    Optional[BaseException] = None
        self._failed     = False
        self._event:     Optional[asyncio.Event] = None
        self._callbacks: list[Callable[[BaseException], Any]] = []

    @property
    def failed(self) -> bool:
        return self._failed

    @property
    def reason(self) -> Optional[BaseException]:
        return self._reason

    def add_callback(self, callback: Callable[[BaseException], Any]) -> None:
        """Call *callback(reason)* on failure; immediately if already failed."""
        if self._failed:
            assert self._reason is not None
            callback(self._reason)
        else:
            self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[BaseException], Any]) -> None:
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass

    async def wait(self) -> BaseException:
        """Block until the signal fires; return the failure reason."""
        if not self._failed:
            if self._event is None:
                self._event = asyncio.Event()
            await self._event.wait()
        assert self._reason is not None
        return self._reason

    def fire(self, reason: BaseException) -> None:
        if self._failed:
            return
        self._failed = True
        self._reason = reason
        if self._event is not None:
            self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback(reason)
            except Exception:
                logger.exception("Unhandled exception in failure-signal callback")


async def run_cancellable(
    operation: Awaitable[T],
    cancel:    Optional[asyncio.Event],
    message:   str,
) -> T:
    """
    Await *operation*, racing it against *cancel*.

    Whichever finishes first wins: the operation's result (or exception)
    is returned, or RequestCancelledError(message) is raised and the
    operation is cancelled.
    """
    if cancel is None:
        return await operation

    task = asyncio.ensure_future(operation)
    if cancel.is_set():
        task.cancel()
        raise RequestCancelledError(message)

    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()

    if task.done() and not task.cancelled():
        return task.result()
    raise RequestCancelledError(message)
