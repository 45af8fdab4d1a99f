"""
types.py – Enumerations and Pydantic v2 models shared by the transports.

GRVT serves three families of hosts per environment:

  edge         – authentication (API key → session cookie)
  trade_data   – private account / order endpoints and streams
  market_data  – public market data endpoints and streams

WebSocket frames are plain JSON.  Inbound frames are classified by the
router (router.py) and then validated into the models below:

    {"request_id": 1, "stream": "v1.ticker.s", "method": "subscribe"}   → SubscriptionResponse
    {"code": 1002, "message": "...", "request_id": 1}                   → ErrorMessage
    {"stream": "v1.ticker.s", "sequence_id": "7", "feed": {...}}        → DataMessage

Unknown keys are kept (extra="allow") because the server adds fields
over time and callers may still want to read them.
"""

from __future__ import annotations

from enum import Enum, unique
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------

# Chain IDs used for EIP-712 signing (dev and stg share a chain)
CHAIN_IDS: dict[str, int] = {
    "dev":     327,
    "stg":     327,
    "testnet": 326,
    "prod":    325,
}


@unique
class GRVTEnv(str, Enum):
    """GRVT deployment environment."""
    DEV     = "dev"
    STG     = "stg"
    TESTNET = "testnet"
    PROD    = "prod"

    @property
    def chain_id(self) -> int:
        return CHAIN_IDS[self.value]

    @property
    def label(self) -> str:
        return self.value

    @property
    def is_testnet(self) -> bool:
        return self is not GRVTEnv.PROD


@unique
class EndpointType(str, Enum):
    """Which family of hosts a request or stream is routed to."""
    EDGE        = "edge"
    TRADE_DATA  = "trade_data"
    MARKET_DATA = "market_data"


def normalize_env(env: Union[GRVTEnv, str]) -> GRVTEnv:
    """Accept a GRVTEnv or its (case-insensitive) string label."""
    if isinstance(env, GRVTEnv):
        return env
    try:
        return GRVTEnv(env.lower())
    except ValueError:
        raise ValueError(
            f"Unknown GRVT environment {env!r}; "
            f"expected one of {[e.value for e in GRVTEnv]}"
        ) from None


# ---------------------------------------------------------------------------
# WebSocket frames (inbound)
# ---------------------------------------------------------------------------

class SubscriptionResponse(BaseModel):
    """Acknowledgement of a subscribe / unsubscribe request."""
    model_config = ConfigDict(extra="allow")

    request_id: Optional[int]       = None
    stream:     Optional[str]       = None
    feed:       Optional[list[Any]] = None
    method:     Optional[str]       = None
    is_full:    Optional[bool]      = None


class ErrorMessage(BaseModel):
    """Server-reported application error, correlated when request_id is set."""
    model_config = ConfigDict(extra="allow")

    code:       int
    message:    str
    request_id: Optional[int] = None


class DataMessage(BaseModel):
    """A payload frame for a subscribed stream."""
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    stream:      str
    sequence_id: Optional[str] = None
    feed:        Any           = None

    @property
    def bare_stream(self) -> str:
        """Stream name with the wire version prefix removed."""
        return strip_stream_version(self.stream)


# ---------------------------------------------------------------------------
# Stream name helpers
# ---------------------------------------------------------------------------

STREAM_VERSION_PREFIX = "v1."


def normalize_stream_name(stream: str) -> str:
    """Return the versioned wire name, e.g. "ticker.s" → "v1.ticker.s"."""
    if stream.startswith(STREAM_VERSION_PREFIX):
        return stream
    return STREAM_VERSION_PREFIX + stream


def strip_stream_version(stream: str) -> str:
    """Return the bare stream name, e.g. "v1.ticker.s" → "ticker.s"."""
    return stream[len(STREAM_VERSION_PREFIX):] if stream.startswith(STREAM_VERSION_PREFIX) else stream
