"""
tests/test_integration.py – Integration smoke tests against GRVT testnet.

These tests make real network calls.  They are skipped unless run with
the --integration flag (see conftest.py); the authenticated ones are
also skipped when no API key is present.

HOW TO RUN
----------
    export GRVT_API_KEY="your_api_key"
    export GRVT_SUB_ACCOUNT_ID="12345"

    pytest tests/test_integration.py -v --integration

WHAT THESE TESTS VERIFY
-----------------------
  1. Instruments  – Public HTTP endpoint lists at least one perpetual
  2. Auth         – API key login returns a non-expired session cookie
  3. Account      – Authenticated HTTP call succeeds with that cookie
  4. WS ticker    – Market-data socket acks a ticker subscription and
                    delivers at least one payload
  5. WS private   – Trade-data socket accepts an authenticated subscription

Each test is independent: failures in earlier tests don't cascade.
"""

from __future__ import annotations

import asyncio
import os
import time
from collections.abc import AsyncIterator
from typing import Any

import pytest
import pytest_asyncio

from grvt_transport import (
    EndpointType,
    GRVTClient,
    GRVTEnv,
    build_account_feed,
    build_ticker_feed,
)

# ---------------------------------------------------------------------------
# Credentials — read from environment
# ---------------------------------------------------------------------------

API_KEY        = os.environ.get("GRVT_API_KEY",        "")
SUB_ACCOUNT_ID = os.environ.get("GRVT_SUB_ACCOUNT_ID", "")

_CREDS_PRESENT = bool(API_KEY and SUB_ACCOUNT_ID)

INSTRUMENT = "BTC_USDT_Perp"

requires_creds = pytest.mark.skipif(not _CREDS_PRESENT, reason="GRVT credentials not set in environment")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def client() -> AsyncIterator[GRVTClient]:
    async with GRVTClient(api_key=API_KEY or None, env=GRVTEnv.TESTNET) as c:
        yield c


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

@pytest.mark.integration
@pytest.mark.asyncio
async def test_instruments(client: GRVTClient) -> None:
    """Public HTTP: instrument list includes at least one active perpetual."""
    body = await client.request(
        EndpointType.MARKET_DATA,
        "full/v1/instruments",
        {"kind": ["PERPETUAL"], "is_active": True, "limit": 10},
    )
    instruments = body.get("result") or []
    assert instruments, "Instrument list is empty"
    assert any("Perp" in (i.get("instrument") or "") for i in instruments)


@pytest.mark.integration
@requires_creds
@pytest.mark.asyncio
async def test_auth(client: GRVTClient) -> None:
    """Auth: cookie is obtained, non-empty and not about to expire."""
    cookie = await client.http.ensure_cookie()
    assert cookie.value, "Expected a non-empty session cookie after login"
    assert cookie.expires_at > time.time() + 5


@pytest.mark.integration
@requires_creds
@pytest.mark.asyncio
async def test_account_summary(client: GRVTClient) -> None:
    """Private HTTP: account summary for the configured sub-account."""
    body = await client.request(
        EndpointType.TRADE_DATA,
        "full/v1/account_summary",
        {"sub_account_id": SUB_ACCOUNT_ID},
        requires_auth=True,
    )
    assert "result" in body


@pytest.mark.integration
@pytest.mark.asyncio
async def test_ws_ticker(client: GRVTClient) -> None:
    """WebSocket: ticker subscription delivers at least one payload within 5 s."""
    received: list[Any] = []

    sub = await client.subscribe("ticker.s", build_ticker_feed(INSTRUMENT), received.append)

    deadline = time.perf_counter() + 5.0
    while not received and time.perf_counter() < deadline:
        await asyncio.sleep(0.1)

    await sub.unsubscribe()
    assert received, "No ticker payload received from WebSocket within 5 s"


@pytest.mark.integration
@requires_creds
@pytest.mark.asyncio
async def test_ws_private_subscription(client: GRVTClient) -> None:
    """WebSocket: the trade-data socket accepts an authenticated order subscription."""
    sub = await client.subscribe("order", build_account_feed(SUB_ACCOUNT_ID), lambda _: None)
    assert not sub.failure_signal.failed
    await sub.unsubscribe()
