"""
examples/quickstart.py – End-to-end demo of the GRVT transports.

Walks through both transports:
  1. Fetch public market data over HTTP (no auth)
  2. Log in with the API key and fetch the account summary
  3. Stream live ticker and order book data over WebSocket
  4. Stream private order updates on the authenticated socket

HOW TO RUN
----------
    export GRVT_API_KEY="your_api_key"          # optional for steps 1 and 3
    export GRVT_SUB_ACCOUNT_ID="12345"
    python examples/quickstart.py

    Everything targets TESTNET by default.  Set GRVT_ENV=prod to go live.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any

from grvt_transport import (
    EndpointType,
    GRVTClient,
    GRVTError,
    HttpTransport,
    TransportSettings,
    build_account_feed,
    build_orderbook_feed,
    build_ticker_feed,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s – %(message)s",
)
logger = logging.getLogger("quickstart")

# ---------------------------------------------------------------------------
# Config – read from environment variables
# ---------------------------------------------------------------------------

SETTINGS       = TransportSettings.from_env()     # GRVT_ENV / GRVT_API_KEY / GRVT_TIMEOUT
SUB_ACCOUNT_ID = os.environ.get("GRVT_SUB_ACCOUNT_ID", "1")

INSTRUMENT = "BTC_USDT_Perp"


# ---------------------------------------------------------------------------
# Part 1 – HTTP: market data + account
# ---------------------------------------------------------------------------

def http_demo() -> None:
    logger.info("=== HTTP demo ===")

    with HttpTransport(SETTINGS.env, api_key=SETTINGS.api_key, timeout=SETTINGS.timeout) as http:
        # 1. Order book (public, no auth required)
        book = http.request(
            EndpointType.MARKET_DATA, "full/v1/book", {"instrument": INSTRUMENT, "depth": 10},
        ).get("result", {})
        bids, asks = book.get("bids", []), book.get("asks", [])
        logger.info(
            "Best bid: %s  |  Best ask: %s",
            bids[0]["price"] if bids else "–",
            asks[0]["price"] if asks else "–",
        )

        # 2. Account summary (logs in transparently)
        if not SETTINGS.api_key:
            logger.info("GRVT_API_KEY not set – skipping authenticated call")
            return
        try:
            summary = http.request(
                EndpointType.TRADE_DATA,
                "full/v1/account_summary",
                {"sub_account_id": SUB_ACCOUNT_ID},
                requires_auth=True,
            ).get("result", {})
            logger.info(
                "Account – equity=%s  available_balance=%s",
                summary.get("total_equity"), summary.get("available_balance"),
            )
        except GRVTError as exc:
            logger.warning("account_summary failed: %s", exc)


# ---------------------------------------------------------------------------
# Part 2 – WebSocket: live market data + private order stream
# ---------------------------------------------------------------------------

async def ws_demo() -> None:
    logger.info("=== WebSocket demo (runs for 15 s) ===")

    def on_ticker(feed: dict[str, Any]) -> None:
        logger.info("[ticker]  last=%s  mark=%s", feed.get("last_price"), feed.get("mark_price"))

    def on_book(feed: dict[str, Any]) -> None:
        bids, asks = feed.get("bids", []), feed.get("asks", [])
        if bids and asks:
            logger.info("[book  ]  bid=%s  ask=%s", bids[0]["price"], asks[0]["price"])

    async def on_order(feed: dict[str, Any]) -> None:
        logger.info("[order ]  id=%s  status=%s", feed.get("order_id"), feed.get("state", {}).get("status"))

    async with GRVTClient(api_key=SETTINGS.api_key, env=SETTINGS.env) as client:
        subs = [
            await client.subscribe("ticker.s", build_ticker_feed(INSTRUMENT), on_ticker),
            await client.subscribe("book.s", build_orderbook_feed(INSTRUMENT), on_book),
        ]
        if SETTINGS.api_key:
            # Routed to the trade-data socket, which logs in first
            subs.append(await client.subscribe("order", build_account_feed(SUB_ACCOUNT_ID), on_order))

        for sub in subs:
            sub.failure_signal.add_callback(
                lambda exc, s=sub: logger.error("%s lost after reconnect: %s", s.stream, exc)
            )

        await asyncio.sleep(15)

        for sub in subs:
            await sub.unsubscribe()

    logger.info("WebSocket demo complete")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main() -> None:
    http_demo()
    asyncio.run(ws_demo())


if __name__ == "__main__":
    main()
