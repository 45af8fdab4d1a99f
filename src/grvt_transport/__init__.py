"""
GRVT Transport – realtime and HTTP transport layer for GRVT Exchange.

Provides:
  - Unified façade                     (client.py        → GRVTClient)
  - Multiplexed WebSocket transport    (ws.py            → WebSocketTransport)
  - Subscription manager               (subscriptions.py → SubscriptionManager)
  - Socket lifecycle and keepalive     (connection.py    → Connection)
  - Frame classification and fan-out   (router.py        → MessageRouter)
  - Sync / async HTTP with cookie auth (http.py          → HttpTransport, AsyncHttpTransport)
  - Session cookie state               (auth.py          → GRVTAuth)
  - Environments and endpoints         (config.py)
  - Stream catalog and feed builders   (streams.py)

Quickstart
----------
    import asyncio
    from grvt_transport import GRVTClient, build_ticker_feed

    async def main() -> None:
        async with GRVTClient(env="testnet") as client:
            await client.subscribe("ticker.s", build_ticker_feed("BTC_USDT_Perp"), print)
            await asyncio.sleep(30)

    asyncio.run(main())
"""

from .types import (
    # Environment
    GRVTEnv,
    EndpointType,
    CHAIN_IDS,
    normalize_env,
    # Wire models
    SubscriptionResponse,
    ErrorMessage,
    DataMessage,
    normalize_stream_name,
    strip_stream_version,
)
from .errors import (
    GRVTError,
    TransportError,
    WebSocketRequestError,
    WebSocketConnectionError,
    SubscriptionTimeoutError,
    ProtocolError,
    HttpRequestError,
    RequestCancelledError,
    AuthConfigError,
)
from .config import (
    EndpointConfig,
    EnvConfig,
    TransportSettings,
    get_env_config,
    get_endpoint_domains,
    get_ws_endpoint,
    get_endpoint,
    get_all_endpoints,
)
from .streams import (
    WS_STREAMS,
    stream_endpoint,
    build_ticker_feed,
    build_orderbook_feed,
    build_trade_feed,
    build_candle_feed,
    build_account_feed,
    build_filtered_account_feed,
)
from .signals import FailureSignal
from .auth import GRVTAuth, SessionCookie, parse_set_cookie
from .http import HttpTransport, AsyncHttpTransport
from .router import MessageRouter, FrameKind
from .connection import Connection, ConnectionState
from .subscriptions import Subscription, SubscriptionManager, SubscriptionState
from .ws import WebSocketTransport
from .client import GRVTClient

__all__ = [
    # Environment
    "GRVTEnv",
    "EndpointType",
    "CHAIN_IDS",
    "normalize_env",
    # Wire models
    "SubscriptionResponse",
    "ErrorMessage",
    "DataMessage",
    "normalize_stream_name",
    "strip_stream_version",
    # Errors
    "GRVTError",
    "TransportError",
    "WebSocketRequestError",
    "WebSocketConnectionError",
    "SubscriptionTimeoutError",
    "ProtocolError",
    "HttpRequestError",
    "RequestCancelledError",
    "AuthConfigError",
    # Configuration
    "EndpointConfig",
    "EnvConfig",
    "TransportSettings",
    "get_env_config",
    "get_endpoint_domains",
    "get_ws_endpoint",
    "get_endpoint",
    "get_all_endpoints",
    # Streams
    "WS_STREAMS",
    "stream_endpoint",
    "build_ticker_feed",
    "build_orderbook_feed",
    "build_trade_feed",
    "build_candle_feed",
    "build_account_feed",
    "build_filtered_account_feed",
    # Auth
    "GRVTAuth",
    "SessionCookie",
    "parse_set_cookie",
    # HTTP
    "HttpTransport",
    "AsyncHttpTransport",
    # WebSocket
    "FailureSignal",
    "MessageRouter",
    "FrameKind",
    "Connection",
    "ConnectionState",
    "Subscription",
    "SubscriptionManager",
    "SubscriptionState",
    "WebSocketTransport",
    # Unified façade
    "GRVTClient",
]

__version__ = "0.1.0"
