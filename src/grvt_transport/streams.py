"""
streams.py – Stream catalog and feed-string builders.

A subscription is addressed by a stream name plus a feed string that
scopes it to an instrument / rate / depth:

    ticker.s   BTC_USDT_Perp@500          instrument@rate
    book.s     BTC_USDT_Perp@500-10       instrument@rate-depth
    trade      BTC_USDT_Perp@50           instrument@limit
    candle     BTC_USDT_Perp@CI_1_M-TRADE instrument@interval-type
    order      123456789-BTC_USDT_Perp    sub_account[-instrument]
"""

from __future__ import annotations

from typing import Optional

from .types import EndpointType, strip_stream_version

# Which socket serves each stream
WS_STREAMS: dict[str, EndpointType] = {
    # Market data
    "mini.s":     EndpointType.MARKET_DATA,
    "mini.d":     EndpointType.MARKET_DATA,
    "ticker.s":   EndpointType.MARKET_DATA,
    "ticker.d":   EndpointType.MARKET_DATA,
    "book.s":     EndpointType.MARKET_DATA,
    "book.d":     EndpointType.MARKET_DATA,
    "trade":      EndpointType.MARKET_DATA,
    "candle":     EndpointType.MARKET_DATA,
    # Trade data (authenticated)
    "order":      EndpointType.TRADE_DATA,
    "state":      EndpointType.TRADE_DATA,
    "position":   EndpointType.TRADE_DATA,
    "fill":       EndpointType.TRADE_DATA,
    "transfer":   EndpointType.TRADE_DATA,
    "deposit":    EndpointType.TRADE_DATA,
    "withdrawal": EndpointType.TRADE_DATA,
}


def stream_endpoint(stream: str) -> EndpointType:
    """Return the endpoint type serving *stream* (versioned or bare name)."""
    try:
        return WS_STREAMS[strip_stream_version(stream)]
    except KeyError:
        raise ValueError(f"Unknown GRVT stream {stream!r}") from None


def build_ticker_feed(instrument: str, rate: str = "500") -> str:
    """Feed for ticker / mini streams, e.g. "BTC_USDT_Perp@500"."""
    return f"{instrument}@{rate}"


def build_orderbook_feed(instrument: str, rate: str = "500", depth: str = "10") -> str:
    """Feed for order book snapshot streams, e.g. "BTC_USDT_Perp@500-10"."""
    return f"{instrument}@{rate}-{depth}"


def build_trade_feed(instrument: str, limit: str = "50") -> str:
    return f"{instrument}@{limit}"


def build_candle_feed(instrument: str, interval: str = "CI_1_M", type: str = "TRADE") -> str:
    return f"{instrument}@{interval}-{type}"


def build_account_feed(sub_account_id: str, instrument: Optional[str] = None) -> str:
    """Feed for order / state / position / fill streams."""
    if instrument:
        return f"{sub_account_id}-{instrument}"
    return str(sub_account_id)


def build_filtered_account_feed(
    sub_account_id: str,
    kind:  Optional[str] = None,
    base:  Optional[str] = None,
    quote: Optional[str] = None,
) -> str:
    """Feed for account streams filtered by kind/base/quote; empty filters stay empty."""
    return f"{sub_account_id}-{kind or ''}-{base or ''}-{quote or ''}"
