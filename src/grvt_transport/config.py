"""
config.py – Environment endpoints, API path catalog and settings.

Hosts follow a fixed pattern per environment:

    prod     https://{edge,trades,market-data}.grvt.io
    testnet  https://{edge,trades,market-data}.testnet.grvt.io
    dev/stg  https://{edge,trades,market-data}.<env>.gravitymarkets.io

The trade-data and market-data hosts also serve a WebSocket at /ws;
the edge host has no socket.

Usage
-----
    from grvt_transport.config import get_endpoint, get_env_config, TransportSettings

    get_env_config("testnet").market_data.rpc_endpoint
    # 'https://market-data.testnet.grvt.io'

    get_endpoint(GRVTEnv.TESTNET, "GET_ALL_INSTRUMENTS")
    # 'https://market-data.testnet.grvt.io/full/v1/all_instruments'

    settings = TransportSettings.from_env()      # GRVT_ENV / GRVT_API_KEY / GRVT_TIMEOUT
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict

from .types import CHAIN_IDS, EndpointType, GRVTEnv, normalize_env

# ---------------------------------------------------------------------------
# Environment hosts
# ---------------------------------------------------------------------------


class EndpointConfig(BaseModel):
    """HTTP (and optional WebSocket) URL for one endpoint type."""
    model_config = ConfigDict(frozen=True)

    rpc_endpoint: str
    ws_endpoint:  Optional[str] = None


class EnvConfig(BaseModel):
    """All endpoints plus the signing chain ID of one environment."""
    model_config = ConfigDict(frozen=True)

    edge:        EndpointConfig
    trade_data:  EndpointConfig
    market_data: EndpointConfig
    chain_id:    int

    def endpoint(self, endpoint_type: EndpointType) -> EndpointConfig:
        return getattr(self, EndpointType(endpoint_type).value)


def _domain(env: GRVTEnv) -> str:
    if env is GRVTEnv.PROD:
        return "grvt.io"
    if env is GRVTEnv.TESTNET:
        return "testnet.grvt.io"
    return f"{env.value}.gravitymarkets.io"


def get_env_config(env: Union[GRVTEnv, str]) -> EnvConfig:
    """Return the endpoint configuration for an environment."""
    env    = normalize_env(env)
    domain = _domain(env)
    return EnvConfig(
        edge=EndpointConfig(rpc_endpoint=f"https://edge.{domain}"),
        trade_data=EndpointConfig(
            rpc_endpoint=f"https://trades.{domain}",
            ws_endpoint=f"wss://trades.{domain}/ws",
        ),
        market_data=EndpointConfig(
            rpc_endpoint=f"https://market-data.{domain}",
            ws_endpoint=f"wss://market-data.{domain}/ws",
        ),
        chain_id=CHAIN_IDS[env.value],
    )


def get_endpoint_domains(env: Union[GRVTEnv, str]) -> dict[EndpointType, str]:
    """Map each endpoint type to its HTTP base URL."""
    config = get_env_config(env)
    return {t: config.endpoint(t).rpc_endpoint for t in EndpointType}


def get_ws_endpoint(env: Union[GRVTEnv, str], endpoint_type: EndpointType) -> Optional[str]:
    """Return the WebSocket URL for an endpoint type, or None if it has none."""
    return get_env_config(env).endpoint(endpoint_type).ws_endpoint


# ---------------------------------------------------------------------------
# API path catalog
# ---------------------------------------------------------------------------

ENDPOINT_VERSION = "v1"

EDGE_ENDPOINTS: dict[str, str] = {
    "GRAPHQL": "query",
    "AUTH":    "auth/api_key/login",
}

TRADE_DATA_ENDPOINTS: dict[str, str] = {
    "CREATE_ORDER":                   f"full/{ENDPOINT_VERSION}/create_order",
    "CANCEL_ALL_ORDERS":              f"full/{ENDPOINT_VERSION}/cancel_all_orders",
    "CANCEL_ORDER":                   f"full/{ENDPOINT_VERSION}/cancel_order",
    "GET_OPEN_ORDERS":                f"full/{ENDPOINT_VERSION}/open_orders",
    "GET_ACCOUNT_SUMMARY":            f"full/{ENDPOINT_VERSION}/account_summary",
    "GET_FUNDING_ACCOUNT_SUMMARY":    f"full/{ENDPOINT_VERSION}/funding_account_summary",
    "GET_AGGREGATED_ACCOUNT_SUMMARY": f"full/{ENDPOINT_VERSION}/aggregated_account_summary",
    "GET_ACCOUNT_HISTORY":            f"full/{ENDPOINT_VERSION}/account_history",
    "GET_POSITIONS":                  f"full/{ENDPOINT_VERSION}/positions",
    "GET_ORDER":                      f"full/{ENDPOINT_VERSION}/order",
    "GET_ORDER_HISTORY":              f"full/{ENDPOINT_VERSION}/order_history",
    "GET_FILL_HISTORY":               f"full/{ENDPOINT_VERSION}/fill_history",
}

MARKET_DATA_ENDPOINTS: dict[str, str] = {
    "GET_ALL_INSTRUMENTS": f"full/{ENDPOINT_VERSION}/all_instruments",
    "GET_INSTRUMENTS":     f"full/{ENDPOINT_VERSION}/instruments",
    "GET_INSTRUMENT":      f"full/{ENDPOINT_VERSION}/instrument",
    "GET_TICKER":          f"full/{ENDPOINT_VERSION}/ticker",
    "GET_MINI_TICKER":     f"full/{ENDPOINT_VERSION}/mini",
    "GET_ORDER_BOOK":      f"full/{ENDPOINT_VERSION}/book",
    "GET_TRADES":          f"full/{ENDPOINT_VERSION}/trade",
    "GET_TRADE_HISTORY":   f"full/{ENDPOINT_VERSION}/trade_history",
    "GET_FUNDING":         f"full/{ENDPOINT_VERSION}/funding",
    "GET_CANDLESTICK":     f"full/{ENDPOINT_VERSION}/kline",
}

GRVT_ENDPOINTS: dict[EndpointType, dict[str, str]] = {
    EndpointType.EDGE:        EDGE_ENDPOINTS,
    EndpointType.TRADE_DATA:  TRADE_DATA_ENDPOINTS,
    EndpointType.MARKET_DATA: MARKET_DATA_ENDPOINTS,
}

# Path used to exchange an API key for a session cookie
LOGIN_PATH = EDGE_ENDPOINTS["AUTH"]


def get_endpoint(env: Union[GRVTEnv, str], name: str) -> Optional[str]:
    """Return the full URL of a named endpoint, or None if the name is unknown."""
    domains = get_endpoint_domains(env)
    for endpoint_type, paths in GRVT_ENDPOINTS.items():
        if name in paths:
            return f"{domains[endpoint_type]}/{paths[name]}"
    return None


def get_all_endpoints(env: Union[GRVTEnv, str]) -> dict[str, str]:
    """Return every named endpoint as a full URL."""
    domains = get_endpoint_domains(env)
    return {
        name: f"{domains[endpoint_type]}/{path}"
        for endpoint_type, paths in GRVT_ENDPOINTS.items()
        for name, path in paths.items()
    }


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

DEFAULT_TIMEOUT_S = 10.0


class TransportSettings(BaseModel):
    """
    Resolved transport options.

    timeout : HTTP timeout in seconds; None disables it
    """
    model_config = ConfigDict(frozen=True)

    env:     GRVTEnv         = GRVTEnv.TESTNET
    api_key: Optional[str]   = None
    timeout: Optional[float] = DEFAULT_TIMEOUT_S

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "TransportSettings":
        """
        Build settings from GRVT_ENV, GRVT_API_KEY and GRVT_TIMEOUT.

        GRVT_TIMEOUT accepts a number of seconds, or "none" / "0" to disable.
        """
        environ = os.environ if environ is None else environ

        raw_timeout = environ.get("GRVT_TIMEOUT", "").strip()
        timeout: Optional[float]
        if not raw_timeout:
            timeout = DEFAULT_TIMEOUT_S
        elif raw_timeout.lower() in ("none", "off", "0"):
            timeout = None
        else:
            timeout = float(raw_timeout)

        return cls(
            env=normalize_env(environ.get("GRVT_ENV", GRVTEnv.TESTNET.value)),
            api_key=environ.get("GRVT_API_KEY") or None,
            timeout=timeout,
        )
