"""
router.py – Classify inbound WebSocket frames and dispatch them.

Each text frame is decoded as JSON and falls into exactly one category,
checked in this order:

  pong      "pong", or {"type": "pong"}
  error     {"code": <number>, "message": <string>, ...}
  response  has "method" or "stream", and "feed" is absent or a list –
            unless it also looks like a data frame
  data      {"stream": <string>, "feed": <anything>}

Data frames are dispatched under the stream name with its "v1." prefix
removed, so listeners register the bare name they subscribed with.
Undecodable or unclassifiable frames are dropped; one bad frame never
affects the connection.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any, Optional, Union

from pydantic import ValidationError

from .types import DataMessage, ErrorMessage, SubscriptionResponse, strip_stream_version

logger = logging.getLogger(__name__)

DataListener     = Callable[[DataMessage], Any]
ResponseListener = Callable[[SubscriptionResponse], Any]
ErrorListener    = Callable[[ErrorMessage], Any]
PongListener     = Callable[[], Any]


class FrameKind(str, Enum):
    PONG     = "pong"
    ERROR    = "error"
    RESPONSE = "response"
    DATA     = "data"


# ---------------------------------------------------------------------------
# Classification (pure functions)
# ---------------------------------------------------------------------------

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_error(msg: dict[str, Any]) -> bool:
    return _is_number(msg.get("code")) and isinstance(msg.get("message"), str)


def _is_data(msg: dict[str, Any]) -> bool:
    return isinstance(msg.get("stream"), str) and "feed" in msg


def _is_response(msg: dict[str, Any]) -> bool:
    if "method" not in msg and "stream" not in msg:
        return False
    # A non-list feed is a payload, not an echo of the requested feeds
    return not ("feed" in msg and not isinstance(msg["feed"], list))


def classify(msg: Any) -> Optional[FrameKind]:
    """Return the category of a decoded frame, or None if it fits none."""
    if msg == "pong" or (isinstance(msg, dict) and msg.get("type") == "pong"):
        return FrameKind.PONG
    if not isinstance(msg, dict):
        return None
    if _is_error(msg):
        return FrameKind.ERROR
    if _is_response(msg) and not _is_data(msg):
        return FrameKind.RESPONSE
    if _is_data(msg):
        return FrameKind.DATA
    return None


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

class MessageRouter:
    """
    Dispatches classified frames to registered listeners.

    Stream listeners are kept per bare stream name in registration order.
    Listeners may be plain callables or coroutine functions; coroutines are
    scheduled on the running loop.  A listener that raises is logged and
    never prevents the remaining listeners from running.
    """

    def __init__(self) -> None:
        self._streams:   dict[str, list[DataListener]] = {}
        self._responses: list[ResponseListener]        = []
        self._errors:    list[ErrorListener]           = []
        self._pongs:     list[PongListener]            = []
        self._tasks:     set[asyncio.Task[Any]]        = set()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add_stream_listener(self, stream: str, listener: DataListener) -> None:
        self._streams.setdefault(strip_stream_version(stream), []).append(listener)

    def remove_stream_listener(self, stream: str, listener: DataListener) -> None:
        name      = strip_stream_version(stream)
        listeners = self._streams.get(name)
        if not listeners:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            return
        if not listeners:
            del self._streams[name]

    def stream_listeners(self, stream: str) -> list[DataListener]:
        return list(self._streams.get(strip_stream_version(stream), ()))

    def add_response_listener(self, listener: ResponseListener) -> None:
        self._responses.append(listener)

    def add_error_listener(self, listener: ErrorListener) -> None:
        self._errors.append(listener)

    def add_pong_listener(self, listener: PongListener) -> None:
        self._pongs.append(listener)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def feed(self, raw: Union[str, bytes]) -> Optional[FrameKind]:
        """Decode, classify and dispatch one frame; return its category."""
        try:
            msg = json.loads(raw)
        except (TypeError, ValueError):
            logger.debug("Dropping non-JSON WebSocket frame: %r", raw)
            return None

        kind = classify(msg)
        try:
            if kind is FrameKind.PONG:
                self._emit(self._pongs, (), "pong")
            elif kind is FrameKind.ERROR:
                error = ErrorMessage.model_validate(msg)
                self._emit(self._errors, (error,), "error")
            elif kind is FrameKind.RESPONSE:
                response = SubscriptionResponse.model_validate(msg)
                self._emit(self._responses, (response,), "subscription response")
            elif kind is FrameKind.DATA:
                data = DataMessage.model_validate(msg)
                self._emit(self._streams.get(data.bare_stream, ()), (data,), data.bare_stream)
            else:
                logger.debug("Dropping unclassified WebSocket frame: %r", msg)
        except ValidationError:
            logger.debug("Dropping malformed %s frame: %r", kind.value if kind else "?", msg)
            return None
        return kind

    def _emit(self, listeners: Any, args: tuple[Any, ...], label: str) -> None:
        # Copy: listeners may unsubscribe themselves while being called
        for listener in list(listeners):
            try:
                result = listener(*args)
                if inspect.isawaitable(result):
                    self._schedule(result, label)
            except Exception:
                logger.exception("Unhandled exception in WebSocket listener for %s", label)

    def _schedule(self, awaitable: Any, label: str) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)

        def _done(t: asyncio.Task[Any]) -> None:
            self._tasks.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error(
                    "Unhandled exception in WebSocket listener for %s",
                    label, exc_info=t.exception(),
                )

        task.add_done_callback(_done)
