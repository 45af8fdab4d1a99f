"""
connection.py – Socket lifecycle for one GRVT WebSocket endpoint.

Connection owns a single websockets client connection and:

1. Connects lazily on start() / ready() and reports lifecycle transitions
   (CONNECTING → OPEN → CLOSING → CLOSED) through explicit listener lists:
   on_open, on_close(error), on_message(raw).
2. Sends a {"method": "ping"} keepalive every 30 s while open; the
   keepalive task lives inside the connection attempt that started it
   and is cancelled with it.
3. Queues outbound frames: send_nowait() appends to an outbox that a
   writer task drains while the socket is open, so frames enqueued
   before the socket opens go out on the open transition.  Frames still
   queued when the socket closes are dropped.
4. Reconnects with exponential back-off after an unexpected disconnect
   (reconnect=True), firing on_open again on every successful reconnect.

Usage
-----
    conn = Connection("wss://market-data.testnet.grvt.io/ws")
    conn.on_message.append(router.feed)
    await conn.ready()
    conn.send_nowait('{"method": "ping"}')
    await conn.close()
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Optional, Union

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

from .errors import WebSocketConnectionError
from .signals import run_cancellable

logger = logging.getLogger(__name__)

# Returns extra handshake headers (e.g. the session cookie) for each connect
HeaderProvider = Callable[[], Awaitable[Optional[dict[str, str]]]]

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

KEEPALIVE_INTERVAL_S = 30.0
_OPEN_TIMEOUT_S       = 10.0
_RECONNECT_BASE       = 1.0
_RECONNECT_MAX        = 60.0
_RECONNECT_EXP        = 2.0

PING_FRAME = json.dumps({"method": "ping"})


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN       = "open"
    CLOSING    = "closing"
    CLOSED     = "closed"


class Connection:
    """
    A single reconnecting duplex channel to one endpoint.

    Parameters
    ----------
    url                : wss:// endpoint URL
    reconnect          : reconnect with back-off after an unexpected close
    headers            : optional async callable returning handshake headers,
                         awaited before every (re)connect
    keepalive_interval : seconds between keepalive pings
    open_timeout       : seconds allowed for the opening handshake
    """

    def __init__(
        self,
        url: str,
        *,
        reconnect:          bool                     = True,
        headers:            Optional[HeaderProvider] = None,
        keepalive_interval: float                    = KEEPALIVE_INTERVAL_S,
        open_timeout:       float                    = _OPEN_TIMEOUT_S,
    ) -> None:
        self.url                 = url
        self.reconnect           = reconnect
        self._headers            = headers
        self._keepalive_interval = keepalive_interval
        self._open_timeout       = open_timeout

        self.on_open:    list[Callable[[], Any]]                          = []
        self.on_close:   list[Callable[[Optional[BaseException]], Any]]   = []
        self.on_message: list[Callable[[Union[str, bytes]], Any]]         = []

        self._state:          ConnectionState            = ConnectionState.CLOSED
        self._ws:             Optional[ClientConnection] = None
        self._task:           Optional[asyncio.Task[None]] = None
        self._keepalive_task: Optional[asyncio.Task[None]] = None
        self._outbox:         asyncio.Queue[str]         = asyncio.Queue()
        self._ready_waiters:  list[asyncio.Future[None]] = []
        self._closed          = False   # close() was called; never reconnect again

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is ConnectionState.OPEN

    @property
    def keepalive_running(self) -> bool:
        return self._keepalive_task is not None and not self._keepalive_task.done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Begin connecting in the background (idempotent; needs a running loop)."""
        if self._closed:
            raise WebSocketConnectionError("Connection has been closed")
        if self._task is not None and not self._task.done():
            return
        self._state = ConnectionState.CONNECTING
        self._task  = asyncio.get_running_loop().create_task(self._run())

    async def ready(self, cancel: Optional[asyncio.Event] = None) -> None:
        """
        Wait until the socket is open.

        Raises WebSocketConnectionError if the connection attempt fails and
        RequestCancelledError if *cancel* is set first.
        """
        if self._state is ConnectionState.OPEN:
            return
        self.start()

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._ready_waiters.append(waiter)
        try:
            await run_cancellable(waiter, cancel, "Aborted while waiting for connection")
        finally:
            if waiter in self._ready_waiters:
                self._ready_waiters.remove(waiter)

    async def close(self, cancel: Optional[asyncio.Event] = None) -> None:
        """
        Close the socket and wait until it is fully closed.

        Resolves immediately when already closed; raises
        RequestCancelledError if *cancel* is set first.
        """
        self._closed = True
        task = self._task
        if task is None or task.done():
            self._state = ConnectionState.CLOSED
            return

        self._state = ConnectionState.CLOSING
        self._stop_keepalive()
        await run_cancellable(self._shutdown(task), cancel, "Aborted while closing connection")

    async def _shutdown(self, task: asyncio.Task[None]) -> None:
        ws = self._ws
        if ws is not None:
            await ws.close()
        else:
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def send_nowait(self, frame: str) -> None:
        """Queue *frame*; it is written as soon as the socket is open."""
        self._outbox.put_nowait(frame)

    async def send(self, frame: str) -> None:
        """Write *frame* now; raises WebSocketConnectionError if not open."""
        ws = self._ws
        if ws is None or self._state is not ConnectionState.OPEN:
            raise WebSocketConnectionError("WebSocket is not open")
        try:
            await ws.send(frame)
        except ConnectionClosed as exc:
            raise WebSocketConnectionError("WebSocket connection closed") from exc

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        back_off = _RECONNECT_BASE

        while not self._closed:
            self._state = ConnectionState.CONNECTING
            error: Optional[BaseException] = None
            try:
                headers = await self._headers() if self._headers is not None else None
                logger.info("Connecting to GRVT WebSocket at %s", self.url)
                async with connect(
                    self.url,
                    additional_headers=headers,
                    open_timeout=self._open_timeout,
                    ping_interval=None,   # application-level keepalive instead
                ) as ws:
                    self._ws    = ws
                    self._state = ConnectionState.OPEN
                    back_off    = _RECONNECT_BASE
                    logger.info("WebSocket connected to %s", self.url)
                    self._handle_open()
                    await self._pump(ws)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                error = exc
            finally:
                self._ws    = None
                self._state = ConnectionState.CLOSED
                self._handle_close(error)

            if self._closed or not self.reconnect:
                break

            logger.warning(
                "WebSocket to %s lost – reconnecting in %.1f s: %s",
                self.url, back_off, error or "closed by server",
            )
            await asyncio.sleep(back_off)
            back_off = min(back_off * _RECONNECT_EXP, _RECONNECT_MAX)

    async def _pump(self, ws: ClientConnection) -> None:
        """Read until the socket closes while the writer and keepalive run."""
        writer = asyncio.create_task(self._write_loop(ws))
        self._keepalive_task = asyncio.create_task(self._keepalive_loop())
        try:
            async for raw in ws:
                self._handle_message(raw)
        finally:
            writer.cancel()
            self._stop_keepalive()

    async def _write_loop(self, ws: ClientConnection) -> None:
        while True:
            frame = await self._outbox.get()
            try:
                await ws.send(frame)
            except ConnectionClosed:
                return

    async def _keepalive_loop(self) -> None:
        while True:
            await asyncio.sleep(self._keepalive_interval)
            if self._state is ConnectionState.OPEN:
                self.send_nowait(PING_FRAME)

    def _stop_keepalive(self) -> None:
        if self._keepalive_task is not None:
            self._keepalive_task.cancel()
            self._keepalive_task = None

    # ------------------------------------------------------------------
    # Event fan-out
    # ------------------------------------------------------------------

    def _handle_open(self) -> None:
        waiters, self._ready_waiters = self._ready_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)
        for callback in list(self.on_open):
            try:
                callback()
            except Exception:
                logger.exception("Unhandled exception in on_open listener")

    def _handle_close(self, error: Optional[BaseException]) -> None:
        # Frames queued for this socket die with it
        while not self._outbox.empty():
            self._outbox.get_nowait()

        if error is not None and not self._closed:
            logger.info("WebSocket to %s closed with error: %s", self.url, error)
        else:
            logger.info("WebSocket to %s closed", self.url)

        waiters, self._ready_waiters = self._ready_waiters, []
        for waiter in waiters:
            if not waiter.done():
                exc = WebSocketConnectionError("Failed to establish WebSocket connection")
                exc.__cause__ = error
                waiter.set_exception(exc)

        for callback in list(self.on_close):
            try:
                callback(error)
            except Exception:
                logger.exception("Unhandled exception in on_close listener")

    def _handle_message(self, raw: Union[str, bytes]) -> None:
        for callback in list(self.on_message):
            try:
                callback(raw)
            except Exception:
                logger.exception("Unhandled exception in on_message listener")
