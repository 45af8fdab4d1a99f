"""
client.py – Unified GRVTClient façade.

Single entry point that owns the async HTTP transport and one WebSocket
transport per endpoint, wired to a shared GRVTAuth instance so the
session cookie is managed once.

Usage
-----
    import asyncio
    from grvt_transport import GRVTClient, EndpointType, build_orderbook_feed

    async def main() -> None:
        async with GRVTClient(api_key="...", env="testnet") as client:

            # One-shot call via HTTP
            book = await client.request(
                EndpointType.MARKET_DATA, "full/v1/book", {"instrument": "BTC_USDT_Perp"},
            )

            # Real-time data via WebSocket – routed to the market-data socket
            await client.subscribe("book.s", build_orderbook_feed("BTC_USDT_Perp"), print)
            await asyncio.sleep(60)

    asyncio.run(main())
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any, Optional, Union

from .auth import GRVTAuth
from .config import DEFAULT_TIMEOUT_S
from .errors import WebSocketConnectionError
from .http import AsyncHttpTransport
from .streams import stream_endpoint
from .subscriptions import Listener, Subscription
from .types import EndpointType, GRVTEnv
from .ws import WebSocketTransport


class GRVTClient:
    """
    Unified façade for the GRVT transports.

    Owns a single GRVTAuth instance shared by the HTTP transport and the
    trade-data socket so authentication state (cookie, refresh lock) is
    never duplicated.

    Parameters
    ----------
    api_key     : GRVT API key; required for authenticated calls and
                  private streams
    env         : GRVTEnv.DEV / STG / TESTNET / PROD or its string label
    timeout     : HTTP timeout and subscribe-ack timeout in seconds
    resubscribe : replay subscriptions after a WebSocket reconnect
    ws_urls     : per-EndpointType WebSocket URL overrides
    """

    def __init__(
        self,
        api_key:     Optional[str]       = None,
        env:         Union[GRVTEnv, str] = GRVTEnv.TESTNET,
        *,
        timeout:     float                                = DEFAULT_TIMEOUT_S,
        resubscribe: bool                                 = True,
        ws_urls:     Optional[Mapping[EndpointType, str]] = None,
        **http_options: Any,
    ) -> None:
        self._auth        = GRVTAuth(api_key=api_key)
        self.http         = AsyncHttpTransport(env, auth=self._auth, timeout=timeout, **http_options)
        self._timeout     = timeout
        self._resubscribe = resubscribe
        self._ws_urls     = {EndpointType(k): v for k, v in (ws_urls or {}).items()}
        self._sockets:    dict[EndpointType, WebSocketTransport] = {}
        self._closed      = False

    # ------------------------------------------------------------------
    # Async context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> "GRVTClient":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close every socket and the HTTP session; safe to call twice."""
        if self._closed:
            return
        self._closed = True
        sockets, self._sockets = list(self._sockets.values()), {}
        await asyncio.gather(*(ws.close() for ws in sockets))
        await self.http.close()

    # ------------------------------------------------------------------
    # Transports
    # ------------------------------------------------------------------

    def ws(self, endpoint_type: EndpointType) -> WebSocketTransport:
        """
        Return the socket for *endpoint_type*, creating it on first use.

        Raises WebSocketConnectionError once the client has been closed.
        """
        if self._closed:
            raise WebSocketConnectionError("GRVTClient is closed")
        endpoint_type = EndpointType(endpoint_type)
        socket = self._sockets.get(endpoint_type)
        if socket is None:
            socket = WebSocketTransport(
                self.env,
                endpoint_type,
                url=self._ws_urls.get(endpoint_type),
                http=self.http if endpoint_type is EndpointType.TRADE_DATA else None,
                timeout=self._timeout,
                resubscribe=self._resubscribe,
            )
            self._sockets[endpoint_type] = socket
        return socket

    async def request(
        self,
        endpoint_type: EndpointType,
        path:          str,
        payload:       Any = None,
        *,
        requires_auth: bool                    = False,
        cancel:        Optional[asyncio.Event] = None,
    ) -> Any:
        """POST via the HTTP transport; see AsyncHttpTransport.request."""
        return await self.http.request(
            endpoint_type, path, payload, requires_auth=requires_auth, cancel=cancel,
        )

    async def subscribe(
        self,
        stream:   str,
        feed:     str,
        listener: Listener,
        *,
        msg_type: Optional[type[Any]] = None,
    ) -> Subscription:
        """Subscribe on the socket that serves *stream* (see WS_STREAMS)."""
        return await self.ws(stream_endpoint(stream)).subscribe(stream, feed, listener, msg_type=msg_type)

    # ------------------------------------------------------------------
    # Convenience: direct access to the shared auth object
    # ------------------------------------------------------------------

    @property
    def auth(self) -> GRVTAuth:
        """The shared GRVTAuth instance."""
        return self._auth

    @property
    def env(self) -> GRVTEnv:
        return self.http.env
