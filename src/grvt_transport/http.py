"""
http.py – HTTP transports (sync and async) for GRVT Exchange.

Every GRVT API call is a JSON POST to one of three hosts, selected by
EndpointType.  Calls flagged requires_auth=True transparently log in
with the API key first and carry the session cookie:

    transport = AsyncHttpTransport(env=GRVTEnv.TESTNET, api_key="...")
    summary   = await transport.request(
        EndpointType.TRADE_DATA,
        "full/v1/account_summary",
        {"sub_account_id": "123"},
        requires_auth=True,
    )

Both transports raise HttpRequestError on non-2xx responses, non-JSON
bodies and network failures, and AuthConfigError (before any I/O) when
an authenticated call is made without an API key.  Nothing is retried.

Usage – sync
------------
    with HttpTransport(env="testnet", api_key="...") as transport:
        book = transport.request(EndpointType.MARKET_DATA, "full/v1/book",
                                 {"instrument": "BTC_USDT_Perp", "depth": 10})

Usage – async
-------------
    async with AsyncHttpTransport(env="testnet") as transport:
        cancel = asyncio.Event()
        book   = await transport.request(EndpointType.MARKET_DATA, "full/v1/book",
                                         {"instrument": "BTC_USDT_Perp"}, cancel=cancel)
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any, Optional, Union
from urllib.parse import urljoin

import aiohttp
import requests

from .auth import GRVTAuth, SessionCookie, parse_set_cookie
from .config import DEFAULT_TIMEOUT_S, LOGIN_PATH, get_endpoint_domains, get_env_config
from .errors import HttpRequestError
from .signals import run_cancellable
from .types import EndpointType, GRVTEnv, normalize_env

logger = logging.getLogger(__name__)

_BASE_HEADERS: dict[str, str] = {
    "Accept-Encoding": "gzip, deflate",
    "Content-Type":    "application/json",
}

_COOKIE_FAILURE = "Failed to obtain authentication cookie"


def _is_success(status: int) -> bool:
    return 200 <= status < 300


def _is_json(content_type: Optional[str]) -> bool:
    return bool(content_type) and "application/json" in content_type


# ---------------------------------------------------------------------------
# Shared configuration
# ---------------------------------------------------------------------------

class _BaseHttpTransport:
    """
    Endpoint resolution, headers and cookie state shared by both transports.

    Parameters
    ----------
    env             : GRVTEnv or its string label
    api_key         : API key for authenticated requests
    timeout         : request timeout in seconds; None disables it
    endpoints       : per-EndpointType base URL overrides
    request_options : extra keyword arguments merged into every POST
                      (a "headers" mapping is merged key by key)
    auth            : share an existing GRVTAuth instead of creating one
    """

    def __init__(
        self,
        env: Union[GRVTEnv, str] = GRVTEnv.TESTNET,
        *,
        api_key:         Optional[str]                          = None,
        timeout:         Optional[float]                        = DEFAULT_TIMEOUT_S,
        endpoints:       Optional[Mapping[EndpointType, str]]   = None,
        request_options: Optional[Mapping[str, Any]]            = None,
        auth:            Optional[GRVTAuth]                     = None,
    ) -> None:
        self.env        = normalize_env(env)
        self.env_config = get_env_config(self.env)
        self.timeout    = timeout
        self.auth       = auth if auth is not None else GRVTAuth(api_key=api_key)

        overrides = {EndpointType(k): v for k, v in (endpoints or {}).items()}
        self.endpoints: dict[EndpointType, str] = {
            t: overrides.get(t, url) for t, url in get_endpoint_domains(self.env).items()
        }
        self.request_options: dict[str, Any] = dict(request_options or {})

    @property
    def api_key(self) -> Optional[str]:
        return self.auth.api_key

    @property
    def is_testnet(self) -> bool:
        return self.env.is_testnet

    def invalidate(self) -> None:
        """Drop the held cookie; the next authenticated call logs in again."""
        self.auth.invalidate()

    def _url(self, endpoint_type: EndpointType, path: str) -> str:
        base = self.endpoints[EndpointType(endpoint_type)]
        if not base.endswith("/"):
            base += "/"
        return urljoin(base, path)

    def _headers(self, requires_auth: bool) -> dict[str, str]:
        headers = dict(_BASE_HEADERS)
        headers.update(self.request_options.get("headers") or {})
        if requires_auth:
            cookie = self.auth.cookie_header()
            if cookie:
                headers["Cookie"] = cookie
        return headers

    def _extra_options(self) -> dict[str, Any]:
        return {k: v for k, v in self.request_options.items() if k != "headers"}


# ---------------------------------------------------------------------------
# Synchronous transport
# ---------------------------------------------------------------------------

class HttpTransport(_BaseHttpTransport):
    """Synchronous HTTP transport (requests-based)."""

    def __init__(self, env: Union[GRVTEnv, str] = GRVTEnv.TESTNET, **kwargs: Any) -> None:
        super().__init__(env, **kwargs)
        self._session: Optional[requests.Session] = None

    def __enter__(self) -> "HttpTransport":
        return self

    def __exit__(self, *_: Any) -> None:
        self.close()

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    def _get_session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def request(
        self,
        endpoint_type: EndpointType,
        path:          str,
        payload:       Any = None,
        *,
        requires_auth: bool = False,
    ) -> Any:
        """POST *payload* as JSON and return the decoded JSON response."""
        if requires_auth:
            self.ensure_cookie()

        url     = self._url(endpoint_type, path)
        headers = self._headers(requires_auth)
        logger.debug("POST %s  body=%s", url, payload)

        try:
            resp = self._get_session().post(
                url,
                data=json.dumps(payload if payload is not None else {}),
                headers=headers,
                timeout=self.timeout,
                **self._extra_options(),
            )
        except requests.RequestException as exc:
            raise HttpRequestError(message=f"POST {url} failed: {exc}") from exc

        if not _is_success(resp.status_code) or not _is_json(resp.headers.get("Content-Type")):
            raise HttpRequestError(resp.status_code, resp.text, reason=resp.reason, response=resp)

        try:
            body = resp.json()
        except ValueError as exc:
            raise HttpRequestError(
                resp.status_code, resp.text, reason=resp.reason, response=resp,
                message=f"Invalid JSON in response from POST {url}",
            ) from exc

        logger.debug("Response %s  body=%s", url, body)
        return body

    def ensure_cookie(self) -> SessionCookie:
        """Return a fresh session cookie, logging in when none is held or it is stale."""
        if self.auth.needs_refresh():
            logger.debug("Refreshing authentication cookie...")
            cookie = self._fetch_cookie()
            if cookie is None:
                raise HttpRequestError(body=_COOKIE_FAILURE)
            self.auth.store(cookie)

        assert self.auth.cookie is not None
        return self.auth.cookie

    def _fetch_cookie(self) -> Optional[SessionCookie]:
        url     = self._url(EndpointType.EDGE, LOGIN_PATH)
        session = self._get_session()
        logger.debug("Authenticating with GRVT at %s", url)

        try:
            resp = session.post(
                url,
                json=self.auth.login_payload(),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("Error obtaining GRVT session cookie: %s", exc)
            return None
        finally:
            # The cookie travels in an explicit header; keep the jar empty
            session.cookies.clear()

        if not _is_success(resp.status_code):
            logger.warning("GRVT authentication failed [%d] POST %s", resp.status_code, url)
            return None

        cookie = parse_set_cookie(resp.headers.get("Set-Cookie"))
        if cookie is None:
            logger.warning("GRVT login response carried no session cookie")
        return cookie


# ---------------------------------------------------------------------------
# Async transport
# ---------------------------------------------------------------------------

class AsyncHttpTransport(_BaseHttpTransport):
    """
    Async HTTP transport (aiohttp-based).

    The aiohttp session is created on first use and must be released
    with close() (or by using the transport as an async context manager).
    Concurrent authenticated calls share a single login round-trip.
    """

    def __init__(self, env: Union[GRVTEnv, str] = GRVTEnv.TESTNET, **kwargs: Any) -> None:
        super().__init__(env, **kwargs)
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "AsyncHttpTransport":
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            # The cookie travels in an explicit header, never through a jar
            self._session = aiohttp.ClientSession(cookie_jar=aiohttp.DummyCookieJar())
        return self._session

    def _client_timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=self.timeout)

    async def request(
        self,
        endpoint_type: EndpointType,
        path:          str,
        payload:       Any = None,
        *,
        requires_auth: bool                    = False,
        cancel:        Optional[asyncio.Event] = None,
    ) -> Any:
        """
        POST *payload* as JSON and return the decoded JSON response.

        cancel : optional event; setting it aborts the call with
                 RequestCancelledError.  It is combined with the transport
                 timeout – whichever fires first wins.
        """
        if requires_auth:
            await run_cancellable(self.ensure_cookie(), cancel, "Request cancelled during authentication")

        url     = self._url(endpoint_type, path)
        headers = self._headers(requires_auth)
        return await run_cancellable(self._post(url, payload, headers), cancel, f"Request to {url} cancelled")

    async def _post(self, url: str, payload: Any, headers: dict[str, str]) -> Any:
        logger.debug("POST %s  body=%s", url, payload)
        try:
            async with self._get_session().post(
                url,
                data=json.dumps(payload if payload is not None else {}),
                headers=headers,
                timeout=self._client_timeout(),
                **self._extra_options(),
            ) as resp:
                if not _is_success(resp.status) or not _is_json(resp.headers.get("Content-Type")):
                    try:
                        text: Optional[str] = await resp.text()
                    except (aiohttp.ClientError, UnicodeDecodeError):
                        text = None
                    raise HttpRequestError(resp.status, text, reason=resp.reason, response=resp)

                try:
                    body = await resp.json(content_type=None)
                except ValueError as exc:
                    raise HttpRequestError(
                        resp.status, None, reason=resp.reason, response=resp,
                        message=f"Invalid JSON in response from POST {url}",
                    ) from exc
        except aiohttp.ClientError as exc:
            raise HttpRequestError(message=f"POST {url} failed: {exc}") from exc
        except asyncio.TimeoutError as exc:
            raise HttpRequestError(message=f"POST {url} timed out after {self.timeout} s") from exc

        logger.debug("Response %s  body=%s", url, body)
        return body

    async def ensure_cookie(self) -> SessionCookie:
        """
        Return a fresh session cookie, logging in when none is held or it is stale.

        Uses the auth refresh lock so concurrent coroutines trigger a single
        login (double-refresh race).
        """
        if not self.auth.needs_refresh():
            assert self.auth.cookie is not None
            return self.auth.cookie

        async with self.auth.refresh_lock:
            # Re-check after acquiring lock – another coroutine may have
            # refreshed while we were waiting.
            if self.auth.needs_refresh():
                logger.debug("Refreshing authentication cookie...")
                cookie = await self._fetch_cookie()
                if cookie is None:
                    raise HttpRequestError(body=_COOKIE_FAILURE)
                self.auth.store(cookie)

        assert self.auth.cookie is not None
        return self.auth.cookie

    async def _fetch_cookie(self) -> Optional[SessionCookie]:
        url = self._url(EndpointType.EDGE, LOGIN_PATH)
        logger.debug("Async authenticating with GRVT at %s", url)

        try:
            async with self._get_session().post(
                url,
                json=self.auth.login_payload(),
                timeout=self._client_timeout(),
            ) as resp:
                if not _is_success(resp.status):
                    logger.warning("GRVT async authentication failed [%d] POST %s", resp.status, url)
                    return None
                header = ", ".join(resp.headers.getall("Set-Cookie", []))
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("Error obtaining GRVT session cookie: %s", exc)
            return None

        cookie = parse_set_cookie(header)
        if cookie is None:
            logger.warning("GRVT async login response carried no session cookie")
        return cookie
