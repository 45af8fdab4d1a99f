"""
subscriptions.py – Multiplexed stream subscriptions over one socket.

The manager keeps one entry per (stream, feed) key.  Any number of
listeners can share an entry; only the first one causes a subscribe
frame on the wire and only the removal of the last one causes an
unsubscribe frame.

Wire protocol
-------------
    → {"request_id": 7, "stream": "v1.ticker.s", "feed": ["BTC_USDT_Perp@500"],
       "method": "subscribe", "is_full": true}
    ← {"request_id": 7, "stream": "v1.ticker.s", ...}              ack
    ← {"code": 1002, "message": "...", "request_id": 7}            rejection
    ← {"stream": "v1.ticker.s", "feed": {...}}                     data

Request ids increase monotonically per manager and are never reused.
A request that sees neither ack nor error within `timeout` seconds
fails with SubscriptionTimeoutError.

Entry lifecycle
---------------
    PENDING ──ack──▶ ESTABLISHED ──reconnect (resubscribe=True)──▶ PENDING
       │                  │
       └──────────────────┴──last listener gone / close with resubscribe=False──▶ REMOVED

On every (re)open, established entries are subscribed again; an entry
whose resubscription is rejected fires its FailureSignal.  On every
close, all in-flight requests fail with WebSocketConnectionError, and
with resubscribe=False all entries are dropped as well.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol

from .errors import (
    ProtocolError,
    SubscriptionTimeoutError,
    WebSocketConnectionError,
)
from .router import MessageRouter
from .signals import FailureSignal
from .types import (
    DataMessage,
    ErrorMessage,
    SubscriptionResponse,
    normalize_stream_name,
    strip_stream_version,
)

logger = logging.getLogger(__name__)

Listener = Callable[[Any], Any]

_REQUEST_TIMEOUT_S = 10.0


class SocketLike(Protocol):
    """The part of Connection the manager depends on."""

    @property
    def is_open(self) -> bool: ...

    def send_nowait(self, frame: str) -> None: ...


class SubscriptionState(str, Enum):
    PENDING     = "pending"
    ESTABLISHED = "established"
    REMOVED     = "removed"


def _deserialize(feed: Any, msg_type: Optional[type[Any]]) -> Any:
    """
    Convert a feed payload into msg_type.

    Falls back to the raw feed if conversion fails or msg_type is None.
    """
    if msg_type is None:
        return feed
    try:
        if hasattr(msg_type, "model_validate"):
            # Pydantic v2 BaseModel
            return msg_type.model_validate(feed)
        return msg_type(feed)
    except Exception:
        logger.debug("Failed to deserialize %r into %s – passing raw feed", feed, msg_type)
        return feed


# ---------------------------------------------------------------------------
# Registry records
# ---------------------------------------------------------------------------

@dataclass
class _Registration:
    listener:  Listener
    wrapper:   Callable[[DataMessage], Any]
    handle:    "Subscription"
    waiters:   int  = 0       # subscribe() calls still awaiting the ack
    delivered: bool = False   # a handle has been returned to some caller


@dataclass
class _SubscriptionEntry:
    stream:    str
    feed:      str
    request:   "asyncio.Future[SubscriptionResponse]"
    listeners: dict[Listener, _Registration] = field(default_factory=dict)
    failure:   FailureSignal                 = field(default_factory=FailureSignal)
    removed:   bool                          = False

    @property
    def key(self) -> tuple[str, str]:
        return (self.stream, self.feed)

    @property
    def settled(self) -> bool:
        return self.request.done()

    @property
    def state(self) -> SubscriptionState:
        if self.removed:
            return SubscriptionState.REMOVED
        if self.settled:
            return SubscriptionState.ESTABLISHED
        return SubscriptionState.PENDING


class Subscription:
    """
    Handle returned by subscribe().

    unsubscribe()  : remove this listener; idempotent
    failure_signal : fires if resubscribing this stream after a reconnect fails
    """

    def __init__(self, manager: "SubscriptionManager", entry: _SubscriptionEntry, listener: Listener) -> None:
        self._manager  = manager
        self._entry    = entry
        self._listener = listener

    @property
    def stream(self) -> str:
        return self._entry.stream

    @property
    def feed(self) -> str:
        return self._entry.feed

    @property
    def state(self) -> SubscriptionState:
        return self._entry.state

    @property
    def failure_signal(self) -> FailureSignal:
        return self._entry.failure

    async def unsubscribe(self) -> None:
        await self._manager._remove_listener(self._entry, self._listener)

    def __repr__(self) -> str:
        return f"Subscription(stream={self.stream!r}, feed={self.feed!r}, state={self.state.value})"


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------

class SubscriptionManager:
    """
    Owns the pending-request index and the subscription index of one socket.

    Parameters
    ----------
    socket      : the Connection (or anything SocketLike) to send frames on
    router      : the MessageRouter fed by that socket
    resubscribe : replay established subscriptions after every reconnect;
                  may be toggled at any time
    timeout     : seconds to wait for a subscribe ack
    """

    def __init__(
        self,
        socket:      SocketLike,
        router:      MessageRouter,
        *,
        resubscribe: bool  = True,
        timeout:     float = _REQUEST_TIMEOUT_S,
    ) -> None:
        self.resubscribe = resubscribe
        self.timeout     = timeout

        self._socket        = socket
        self._router        = router
        self._subscriptions: dict[tuple[str, str], _SubscriptionEntry]        = {}
        self._pending:       dict[int, asyncio.Future[SubscriptionResponse]] = {}
        self._request_id    = 0

        router.add_response_listener(self._handle_response)
        router.add_error_listener(self._handle_error)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def pending_request_ids(self) -> list[int]:
        return sorted(self._pending)

    def entry_state(self, stream: str, feed: str) -> SubscriptionState:
        entry = self._subscriptions.get((strip_stream_version(stream), feed))
        return entry.state if entry is not None else SubscriptionState.REMOVED

    def __len__(self) -> int:
        return len(self._subscriptions)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def subscribe(
        self,
        stream:   str,
        feed:     str,
        listener: Listener,
        *,
        msg_type: Optional[type[Any]] = None,
    ) -> Subscription:
        """
        Register *listener* for (stream, feed) and wait for the server ack.

        The listener receives each data frame's feed payload (converted to
        msg_type when given).  Subscribing the same listener twice to the
        same key is a no-op returning an equivalent handle.

        Raises the request's failure (ProtocolError, SubscriptionTimeoutError,
        WebSocketConnectionError); the listener is not kept in that case.
        """
        stream = strip_stream_version(stream)
        key    = (stream, feed)

        entry = self._subscriptions.get(key)
        if entry is None:
            entry = _SubscriptionEntry(
                stream=stream,
                feed=feed,
                request=self._send_request("subscribe", stream, feed),
            )
            self._subscriptions[key] = entry
            logger.debug("New subscription %s %s", stream, feed)

        registration = entry.listeners.get(listener)
        if registration is None:
            registration = self._add_listener(entry, listener, msg_type)

        registration.waiters += 1
        try:
            # shield: one caller giving up must not cancel the shared request
            await asyncio.shield(entry.request)
        except BaseException:
            registration.waiters -= 1
            # Nobody holds a handle and nobody else is waiting for one
            if not registration.delivered and registration.waiters == 0:
                if self._drop_listener(entry, listener):
                    self._release(entry)
            raise

        registration.waiters  -= 1
        registration.delivered = True
        return registration.handle

    # ------------------------------------------------------------------
    # Listener bookkeeping
    # ------------------------------------------------------------------

    def _add_listener(
        self,
        entry:    _SubscriptionEntry,
        listener: Listener,
        msg_type: Optional[type[Any]],
    ) -> _Registration:
        def wrapper(message: DataMessage) -> Any:
            return listener(_deserialize(message.feed, msg_type))

        registration = _Registration(
            listener=listener,
            wrapper=wrapper,
            handle=Subscription(self, entry, listener),
        )
        self._router.add_stream_listener(entry.stream, wrapper)
        entry.listeners[listener] = registration
        return registration

    def _drop_listener(self, entry: _SubscriptionEntry, listener: Listener) -> bool:
        """Unregister *listener*; return True if it was the entry's last one."""
        registration = entry.listeners.pop(listener, None)
        if registration is not None:
            self._router.remove_stream_listener(entry.stream, registration.wrapper)

        if entry.listeners or entry.removed:
            return False

        entry.removed = True
        if self._subscriptions.get(entry.key) is entry:
            del self._subscriptions[entry.key]
        return True

    async def _remove_listener(self, entry: _SubscriptionEntry, listener: Listener) -> None:
        if listener not in entry.listeners:
            return
        if self._drop_listener(entry, listener):
            logger.debug("Last listener gone for %s %s", entry.stream, entry.feed)
            self._release(entry)

    def _release(self, entry: _SubscriptionEntry) -> None:
        """Unsubscribe a removed entry the server has, or will have, subscribed."""
        request = entry.request
        if not request.done():
            # Queued behind the entry's own subscribe frame
            self._send_unsubscribe(entry.stream, entry.feed)
        elif self._socket.is_open and not request.cancelled() and request.exception() is None:
            self._send_unsubscribe(entry.stream, entry.feed)

    # ------------------------------------------------------------------
    # Wire requests
    # ------------------------------------------------------------------

    def _next_request_id(self) -> int:
        self._request_id += 1
        return self._request_id

    def _send_request(self, method: str, stream: str, feed: str) -> "asyncio.Future[SubscriptionResponse]":
        """Queue a subscribe frame and return the future of its ack."""
        loop       = asyncio.get_running_loop()
        request_id = self._next_request_id()
        future: asyncio.Future[SubscriptionResponse] = loop.create_future()
        self._pending[request_id] = future

        frame = {
            "request_id": request_id,
            "stream":     normalize_stream_name(stream),
            "feed":       [feed],
            "method":     method,
            "is_full":    True,
        }
        # Written immediately if open, otherwise on the open transition
        self._socket.send_nowait(json.dumps(frame))

        timer = loop.call_later(self.timeout, self._expire, request_id)
        future.add_done_callback(lambda _: timer.cancel())
        future.add_done_callback(_consume_exception)
        return future

    def _send_unsubscribe(self, stream: str, feed: str) -> None:
        # Fire and forget: the ack is not awaited.  Same outbox as subscribe
        # frames, so the server sees them in the order they were issued.
        frame = {
            "request_id": self._next_request_id(),
            "stream":     normalize_stream_name(stream),
            "feed":       [feed],
            "method":     "unsubscribe",
        }
        self._socket.send_nowait(json.dumps(frame))

    def _expire(self, request_id: int) -> None:
        future = self._pending.pop(request_id, None)
        if future is not None and not future.done():
            future.set_exception(SubscriptionTimeoutError(request_id, self.timeout))

    # ------------------------------------------------------------------
    # Router callbacks
    # ------------------------------------------------------------------

    def _handle_response(self, response: SubscriptionResponse) -> None:
        if response.request_id is None:
            return
        future = self._pending.pop(response.request_id, None)
        if future is not None and not future.done():
            future.set_result(response)

    def _handle_error(self, error: ErrorMessage) -> None:
        if error.request_id is None:
            logger.warning("GRVT WebSocket error [%d]: %s", error.code, error.message)
            return
        future = self._pending.pop(error.request_id, None)
        if future is not None and not future.done():
            future.set_exception(ProtocolError(error.code, error.message, error.request_id))

    # ------------------------------------------------------------------
    # Socket lifecycle callbacks
    # ------------------------------------------------------------------

    def handle_open(self) -> None:
        """Replay established subscriptions after a (re)connect."""
        if not self.resubscribe:
            return

        for entry in list(self._subscriptions.values()):
            # Entries still waiting on their first ack are not replayed
            if not entry.settled:
                continue
            logger.debug("Resubscribing %s %s", entry.stream, entry.feed)
            entry.request = self._send_request("subscribe", entry.stream, entry.feed)
            entry.request.add_done_callback(_fire_on_failure(entry.failure))

    def handle_close(self, error: Optional[BaseException] = None) -> None:
        """Fail in-flight requests; drop all entries unless resubscribing."""
        if not self.resubscribe:
            for entry in list(self._subscriptions.values()):
                for listener in list(entry.listeners):
                    self._drop_listener(entry, listener)
            self._subscriptions.clear()

        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                exc = WebSocketConnectionError("WebSocket connection closed")
                exc.__cause__ = error
                future.set_exception(exc)


def _consume_exception(future: "asyncio.Future[Any]") -> None:
    # Mark the exception as retrieved; every failure is surfaced elsewhere
    if not future.cancelled():
        future.exception()


def _fire_on_failure(signal: FailureSignal) -> Callable[["asyncio.Future[Any]"], None]:
    def _done(future: "asyncio.Future[Any]") -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.warning("Resubscription failed: %s", exc)
            signal.fire(exc)
    return _done
