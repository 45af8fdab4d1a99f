"""
examples/websocket_streams.py – Several listeners on one market-data socket.

Shows the multiplexing behaviour of WebSocketTransport:
  - two listeners on the same ticker feed share one wire subscription
  - ticker, mini and book streams share one socket
  - subscriptions are replayed after a reconnect; a rejected replay
    fires the subscription's failure_signal

HOW TO RUN
----------
    python examples/websocket_streams.py            # Ctrl-C to stop
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Any

from grvt_transport import (
    GRVTEnv,
    WebSocketTransport,
    build_orderbook_feed,
    build_ticker_feed,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s – %(message)s",
)
logger = logging.getLogger("websocket_streams")

INSTRUMENT = "BTC_USDT_Perp"


def on_ticker(feed: dict[str, Any]) -> None:
    logger.info("[ticker] last=%s mark=%s index=%s",
                feed.get("last_price"), feed.get("mark_price"), feed.get("index_price"))


def on_ticker_volume(feed: dict[str, Any]) -> None:
    logger.info("[volume] buy_24h=%s", feed.get("buy_volume_24h_b"))


def on_mini(feed: dict[str, Any]) -> None:
    logger.info("[mini  ] funding=%s open_interest=%s", feed.get("funding_rate"), feed.get("open_interest"))


def on_book(feed: dict[str, Any]) -> None:
    bids, asks = feed.get("bids") or [], feed.get("asks") or []
    logger.info("[book  ] best_bid=%s best_ask=%s",
                bids[0] if bids else None, asks[0] if asks else None)


async def main() -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    async with WebSocketTransport(GRVTEnv.TESTNET) as ws:
        ticker_feed = build_ticker_feed(INSTRUMENT)
        subs = [
            await ws.subscribe("ticker.s", ticker_feed, on_ticker),
            # Same (stream, feed): joins the subscription above, no extra frame
            await ws.subscribe("ticker.s", ticker_feed, on_ticker_volume),
            await ws.subscribe("mini.s", ticker_feed, on_mini),
            await ws.subscribe("book.s", build_orderbook_feed(INSTRUMENT), on_book),
        ]
        for sub in subs:
            sub.failure_signal.add_callback(
                lambda exc, s=sub: logger.error("%s %s failed: %s", s.stream, s.feed, exc)
            )

        logger.info("%d listeners over %d wire subscriptions – Ctrl-C to exit",
                    len(subs), len(ws.subscriptions))
        await stop.wait()

        logger.info("Shutting down…")
        for sub in subs:
            await sub.unsubscribe()


if __name__ == "__main__":
    asyncio.run(main())
