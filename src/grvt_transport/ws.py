"""
ws.py – Async WebSocket transport for GRVT Exchange.

WebSocketTransport wires the three layers of one socket together:

    Connection           socket lifecycle, keepalive, reconnect back-off
      └─ MessageRouter   frame classification and stream fan-out
           └─ SubscriptionManager
                         request correlation, dedup, resubscription

Many listeners can share one (stream, feed) subscription; the wire only
sees one subscribe frame for it.  After a reconnect every established
subscription is replayed unless resubscribe is switched off.

Usage
-----
    from grvt_transport import WebSocketTransport, EndpointType, build_ticker_feed

    def on_ticker(feed: dict) -> None:
        print(feed["last_price"])

    async with WebSocketTransport(env="testnet") as ws:
        sub = await ws.subscribe("ticker.s", build_ticker_feed("BTC_USDT_Perp"), on_ticker)
        await asyncio.sleep(60)
        await sub.unsubscribe()

Private streams live on the trade-data socket and need the session
cookie; pass the HTTP transport that holds the API key:

    http = AsyncHttpTransport(env="testnet", api_key="...")
    ws   = WebSocketTransport(env="testnet", endpoint_type=EndpointType.TRADE_DATA, http=http)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Union

from .auth import COOKIE_NAME
from .config import DEFAULT_TIMEOUT_S, get_ws_endpoint
from .connection import KEEPALIVE_INTERVAL_S, Connection, ConnectionState
from .http import AsyncHttpTransport
from .router import MessageRouter
from .subscriptions import Listener, Subscription, SubscriptionManager
from .types import EndpointType, GRVTEnv, normalize_env

logger = logging.getLogger(__name__)


class WebSocketTransport:
    """
    Multiplexed subscriptions over one GRVT WebSocket endpoint.

    Parameters
    ----------
    env                : GRVTEnv or its string label
    endpoint_type      : EndpointType.MARKET_DATA (public streams) or
                         EndpointType.TRADE_DATA (private streams)
    url                : override the socket URL derived from env/endpoint_type
    cookie             : static session cookie value for the handshake
    http               : AsyncHttpTransport to obtain a fresh cookie from
                         before every (re)connect; takes precedence over cookie
    timeout            : seconds to wait for a subscribe ack
    resubscribe        : replay subscriptions after a reconnect
    reconnect          : reconnect with back-off after an unexpected close
    keepalive_interval : seconds between application-level pings
    """

    def __init__(
        self,
        env:                Union[GRVTEnv, str]          = GRVTEnv.TESTNET,
        endpoint_type:      EndpointType                 = EndpointType.MARKET_DATA,
        *,
        url:                Optional[str]                = None,
        cookie:             Optional[str]                = None,
        http:               Optional[AsyncHttpTransport] = None,
        timeout:            float                        = DEFAULT_TIMEOUT_S,
        resubscribe:        bool                         = True,
        reconnect:          bool                         = True,
        keepalive_interval: float                        = KEEPALIVE_INTERVAL_S,
    ) -> None:
        self.env           = normalize_env(env)
        self.endpoint_type = EndpointType(endpoint_type)
        self._cookie       = cookie
        self._http         = http

        if url is None:
            url = get_ws_endpoint(self.env, self.endpoint_type)
        if url is None:
            raise ValueError(f"Endpoint type {self.endpoint_type.value!r} has no WebSocket")

        self.router        = MessageRouter()
        self.connection    = Connection(
            url,
            reconnect=reconnect,
            headers=self._handshake_headers if (cookie or http) else None,
            keepalive_interval=keepalive_interval,
        )
        self.subscriptions = SubscriptionManager(
            self.connection,
            self.router,
            resubscribe=resubscribe,
            timeout=timeout,
        )

        self.connection.on_message.append(self.router.feed)
        self.connection.on_open.append(self.subscriptions.handle_open)
        self.connection.on_close.append(self.subscriptions.handle_close)

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> "WebSocketTransport":
        self.connection.start()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def url(self) -> str:
        return self.connection.url

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    @property
    def resubscribe(self) -> bool:
        return self.subscriptions.resubscribe

    @resubscribe.setter
    def resubscribe(self, enabled: bool) -> None:
        self.subscriptions.resubscribe = enabled

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ready(self, cancel: Optional[asyncio.Event] = None) -> None:
        """Connect if needed and wait until the socket is open."""
        await self.connection.ready(cancel)

    async def close(self, cancel: Optional[asyncio.Event] = None) -> None:
        """Close the socket; pending subscribe requests fail with WebSocketConnectionError."""
        await self.connection.close(cancel)

    async def subscribe(
        self,
        stream:   str,
        feed:     str,
        listener: Listener,
        *,
        msg_type: Optional[type[Any]] = None,
    ) -> Subscription:
        """
        Subscribe *listener* to (stream, feed) and wait for the server ack.

        Parameters
        ----------
        stream   : stream name, e.g. "ticker.s" or "v1.ticker.s"
        feed     : feed string, see the build_*_feed helpers
        listener : callable or coroutine function receiving each feed payload
        msg_type : optional pydantic model the payload is validated into;
                   the raw payload is passed if validation fails
        """
        self.connection.start()
        return await self.subscriptions.subscribe(stream, feed, listener, msg_type=msg_type)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _handshake_headers(self) -> Optional[dict[str, str]]:
        if self._http is not None:
            value: Optional[str] = (await self._http.ensure_cookie()).value
        else:
            value = self._cookie
        if not value:
            return None
        logger.debug("Attaching session cookie to handshake for %s", self.url)
        return {"Cookie": f"{COOKIE_NAME}={value}"}

    def __repr__(self) -> str:
        return f"WebSocketTransport(url={self.url!r}, state={self.state.value})"
