"""
tests/conftest.py – Shared fixtures and the --integration switch.

FakeGRVTServer is a local websockets server speaking just enough of the
GRVT stream protocol for transport tests: it records every frame it
receives, acks subscribe frames (or rejects configured feeds with an
error frame), answers pings and can push data or drop the socket.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from typing import Any, Optional

import pytest
import pytest_asyncio
from websockets.asyncio.server import ServerConnection, serve
from websockets.exceptions import ConnectionClosed


# ---------------------------------------------------------------------------
# pytest plugin: --integration flag + skip logic
# ---------------------------------------------------------------------------

def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="Run integration tests against GRVT testnet",
    )


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    if config.getoption("--integration"):
        return
    skip_integration = pytest.mark.skip(reason="pass --integration to run against testnet")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# ---------------------------------------------------------------------------
# Fake WebSocket server
# ---------------------------------------------------------------------------

class FakeGRVTServer:
    def __init__(self) -> None:
        self.url           = ""
        self.ack           = True
        self.reject_feeds: set[str]                 = set()
        self.received:     list[dict[str, Any]]     = []
        self.connections:  list[ServerConnection]   = []
        self.cookies:      list[Optional[str]]      = []

    async def handler(self, ws: ServerConnection) -> None:
        self.connections.append(ws)
        self.cookies.append(ws.request.headers.get("Cookie") if ws.request else None)
        try:
            async for raw in ws:
                msg = json.loads(raw)
                self.received.append(msg)
                await self._reply(ws, msg)
        except ConnectionClosed:
            pass

    async def _reply(self, ws: ServerConnection, msg: dict[str, Any]) -> None:
        method = msg.get("method")
        if method == "ping":
            await ws.send("pong")
        elif method == "subscribe" and self.ack:
            feed = msg["feed"][0]
            if feed in self.reject_feeds:
                await ws.send(json.dumps({
                    "code": 1002, "message": f"invalid feed {feed}", "request_id": msg["request_id"],
                }))
            else:
                await ws.send(json.dumps({
                    "request_id": msg["request_id"],
                    "stream":     msg["stream"],
                    "method":     "subscribe",
                }))

    def frames(self, method: str) -> list[dict[str, Any]]:
        return [m for m in self.received if m.get("method") == method]

    async def push(self, stream: str, feed: Any) -> None:
        """Send a data frame on the most recent connection."""
        await self.connections[-1].send(json.dumps({"stream": stream, "sequence_id": "1", "feed": feed}))

    async def drop(self) -> None:
        """Close the most recent connection from the server side."""
        await self.connections[-1].close()


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll *predicate* until it holds; fail the test after *timeout* seconds."""
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.01)
    await asyncio.wait_for(_poll(), timeout)


@pytest_asyncio.fixture
async def grvt_server() -> AsyncIterator[FakeGRVTServer]:
    fake = FakeGRVTServer()
    async with serve(fake.handler, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        fake.url = f"ws://127.0.0.1:{port}"
        yield fake


@pytest.fixture
def fast_reconnect(monkeypatch: pytest.MonkeyPatch) -> None:
    """Shrink the reconnect back-off so reconnect tests finish quickly."""
    import grvt_transport.connection as connection
    monkeypatch.setattr(connection, "_RECONNECT_BASE", 0.01)
