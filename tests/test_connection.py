"""
tests/test_connection.py – Lifecycle tests for Connection.

Runs against the local FakeGRVTServer (see conftest.py); no external
network access.  They verify:
  1. ready() resolves on open, immediately when already open, and
     rejects on connection failure or cancellation.
  2. close() resolves when never started, stops the keepalive and
     fires on_close.
  3. The keepalive sends {"method": "ping"} while open.
  4. Frames queued before open are written on the open transition.
  5. A server-side drop triggers a reconnect and a second on_open.
"""

from __future__ import annotations

import asyncio

import pytest

from conftest import FakeGRVTServer, wait_until
from grvt_transport.connection import Connection, ConnectionState
from grvt_transport.errors import RequestCancelledError, WebSocketConnectionError

# Nothing listens on port 1
_DEAD_URL = "ws://127.0.0.1:1"


class TestReady:
    @pytest.mark.asyncio
    async def test_ready_opens_socket(self, grvt_server: FakeGRVTServer) -> None:
        conn = Connection(grvt_server.url)
        try:
            await conn.ready()
            assert conn.state is ConnectionState.OPEN
            assert conn.is_open
            # Already open: resolves without waiting
            await asyncio.wait_for(conn.ready(), timeout=0.1)
        finally:
            await conn.close()

    @pytest.mark.asyncio
    async def test_ready_rejects_on_failure(self) -> None:
        conn = Connection(_DEAD_URL, reconnect=False)
        with pytest.raises(WebSocketConnectionError):
            await conn.ready()
        assert conn.state is ConnectionState.CLOSED
        await conn.close()

    @pytest.mark.asyncio
    async def test_ready_cancelled(self) -> None:
        conn   = Connection(_DEAD_URL)
        cancel = asyncio.Event()
        cancel.set()
        with pytest.raises(RequestCancelledError):
            await conn.ready(cancel)
        await conn.close()

    @pytest.mark.asyncio
    async def test_start_after_close_raises(self, grvt_server: FakeGRVTServer) -> None:
        conn = Connection(grvt_server.url)
        await conn.ready()
        await conn.close()
        with pytest.raises(WebSocketConnectionError):
            await conn.ready()


class TestClose:
    @pytest.mark.asyncio
    async def test_close_never_started(self) -> None:
        conn = Connection(_DEAD_URL)
        await asyncio.wait_for(conn.close(), timeout=0.1)
        assert conn.state is ConnectionState.CLOSED

    @pytest.mark.asyncio
    async def test_close_fires_on_close_and_stops_keepalive(self, grvt_server: FakeGRVTServer) -> None:
        conn   = Connection(grvt_server.url)
        closes: list[object] = []
        conn.on_close.append(closes.append)

        await conn.ready()
        assert conn.keepalive_running

        await conn.close()
        assert conn.state is ConnectionState.CLOSED
        assert not conn.keepalive_running
        assert closes == [None]

    @pytest.mark.asyncio
    async def test_close_cancelled(self, grvt_server: FakeGRVTServer) -> None:
        conn   = Connection(grvt_server.url)
        await conn.ready()

        cancel = asyncio.Event()
        cancel.set()
        with pytest.raises(RequestCancelledError):
            await conn.close(cancel)

        await conn.close()
        assert conn.state is ConnectionState.CLOSED


class TestTraffic:
    @pytest.mark.asyncio
    async def test_keepalive_ping(self, grvt_server: FakeGRVTServer) -> None:
        conn  = Connection(grvt_server.url, keepalive_interval=0.05)
        pongs: list[str] = []
        conn.on_message.append(pongs.append)
        try:
            await conn.ready()
            await wait_until(lambda: len(grvt_server.frames("ping")) >= 2)
            await wait_until(lambda: "pong" in pongs)
        finally:
            await conn.close()

    @pytest.mark.asyncio
    async def test_frames_queued_before_open(self, grvt_server: FakeGRVTServer) -> None:
        conn = Connection(grvt_server.url)
        conn.send_nowait('{"method": "hello"}')
        try:
            await conn.ready()
            await wait_until(lambda: grvt_server.frames("hello") != [])
        finally:
            await conn.close()

    @pytest.mark.asyncio
    async def test_send_when_closed_raises(self) -> None:
        conn = Connection(_DEAD_URL)
        with pytest.raises(WebSocketConnectionError):
            await conn.send('{"method": "hello"}')

    @pytest.mark.asyncio
    async def test_send_when_open(self, grvt_server: FakeGRVTServer) -> None:
        conn = Connection(grvt_server.url)
        try:
            await conn.ready()
            await conn.send('{"method": "hello"}')
            await wait_until(lambda: grvt_server.frames("hello") != [])
        finally:
            await conn.close()


class TestReconnect:
    @pytest.mark.asyncio
    @pytest.mark.usefixtures("fast_reconnect")
    async def test_reconnects_after_server_drop(self, grvt_server: FakeGRVTServer) -> None:
        conn   = Connection(grvt_server.url)
        opens: list[bool]   = []
        closes: list[object] = []
        conn.on_open.append(lambda: opens.append(True))
        conn.on_close.append(closes.append)
        try:
            await conn.ready()
            await grvt_server.drop()

            await wait_until(lambda: len(opens) == 2)
            assert len(closes) == 1
            await wait_until(lambda: len(grvt_server.connections) == 2)
            assert conn.is_open
        finally:
            await conn.close()

    @pytest.mark.asyncio
    async def test_no_reconnect_when_disabled(self, grvt_server: FakeGRVTServer) -> None:
        conn   = Connection(grvt_server.url, reconnect=False)
        closes: list[object] = []
        conn.on_close.append(closes.append)

        await conn.ready()
        await grvt_server.drop()

        await wait_until(lambda: conn.state is ConnectionState.CLOSED)
        assert closes == [None]
        assert len(grvt_server.connections) == 1
        await conn.close()
