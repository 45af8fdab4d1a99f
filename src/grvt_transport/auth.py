"""
auth.py – Session cookie state for GRVT Exchange.

GRVT's API uses an API-key + cookie-based session auth flow:

1. POST  <edge>/auth/api_key/login  with { api_key: "..." }
   → Server answers with  Set-Cookie: gravity=<token>; expires=<http-date>; ...
2. Every authenticated request carries  Cookie: gravity=<token>
3. The cookie is renewed when it is within _REFRESH_BUFFER_S of expiry.

GRVTAuth only holds the credential and decides *when* to refresh; the
HTTP transports (http.py) perform the login round-trip and hand the
parsed cookie back via store().

Usage
-----
    auth = GRVTAuth(api_key="my_api_key")
    if auth.needs_refresh():
        auth.store(parse_set_cookie(response_headers["Set-Cookie"]))
    headers["Cookie"] = auth.cookie_header()
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import timezone
from email.utils import parsedate_to_datetime
from typing import Optional

from .errors import AuthConfigError

logger = logging.getLogger(__name__)

# Cookie name returned by GRVT's auth service
COOKIE_NAME = "gravity"

# How many seconds before expiry to proactively refresh
_REFRESH_BUFFER_S = 5.0

# Lifetime assumed when the server omits the expires attribute (24 h)
_DEFAULT_TTL_S = 86_400.0

_COOKIE_RE  = re.compile(COOKIE_NAME + r"=([^;]+)")
_EXPIRES_RE = re.compile(r"expires=([^;]+)", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Cookie value object
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SessionCookie:
    value:      str
    expires_at: float   # Unix timestamp, seconds

    def expires_within(self, seconds: float, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return self.expires_at - now <= seconds


def _parse_expires(raw: str) -> Optional[float]:
    try:
        expires = parsedate_to_datetime(raw.strip())
    except (TypeError, ValueError, IndexError):
        return None
    if expires is None:
        return None
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    return expires.timestamp()


def parse_set_cookie(header: Optional[str], now: Optional[float] = None) -> Optional[SessionCookie]:
    """
    Extract the session cookie from a Set-Cookie header value.

    Returns None when the header is missing or carries no gravity cookie.
    A missing or unparseable expires attribute defaults to 24 h from now.
    """
    if not header:
        return None

    cookie_match = _COOKIE_RE.search(header)
    if cookie_match is None:
        return None

    expires_at: Optional[float] = None
    expires_match = _EXPIRES_RE.search(header)
    if expires_match is not None:
        expires_at = _parse_expires(expires_match.group(1))
        if expires_at is None:
            logger.debug("Unparseable cookie expiry %r – assuming 24 h", expires_match.group(1))

    if expires_at is None:
        expires_at = (time.time() if now is None else now) + _DEFAULT_TTL_S

    return SessionCookie(value=cookie_match.group(1), expires_at=expires_at)


# ---------------------------------------------------------------------------
# Auth state
# ---------------------------------------------------------------------------

@dataclass
class GRVTAuth:
    """
    Holds the API key and the current session cookie.

    Parameters
    ----------
    api_key        : GRVT API key (created in the exchange web UI); may be
                     None for transports that only call public endpoints
    refresh_buffer : seconds before expiry at which the cookie counts as stale

    Thread / async safety
    ---------------------
    Sync path is single-threaded (protect externally if needed).
    Async path serialises refreshes through refresh_lock so concurrent
    coroutines never race each other into duplicate logins.
    """

    api_key:        Optional[str] = None
    refresh_buffer: float         = _REFRESH_BUFFER_S

    _cookie:      Optional[SessionCookie] = field(default=None, init=False, repr=False)
    refresh_lock: asyncio.Lock            = field(default_factory=asyncio.Lock, init=False, repr=False)

    @property
    def cookie(self) -> Optional[SessionCookie]:
        return self._cookie

    def needs_refresh(self, now: Optional[float] = None) -> bool:
        """
        True when no cookie is held or the held one is about to expire.

        Raises AuthConfigError when no API key is configured, since no
        amount of retrying can make an authenticated call succeed then.
        """
        if not self.api_key:
            raise AuthConfigError("Attempting to use authenticated API without API key set")
        if self._cookie is None:
            return True
        return self._cookie.expires_within(self.refresh_buffer, now)

    def login_payload(self) -> dict[str, str]:
        if not self.api_key:
            raise AuthConfigError("Attempting to use authenticated API without API key set")
        return {"api_key": self.api_key}

    def store(self, cookie: SessionCookie) -> None:
        """Replace the held cookie."""
        self._cookie = cookie
        logger.info(
            "GRVT session authenticated, expires in %.0f s",
            cookie.expires_at - time.time(),
        )

    def invalidate(self) -> None:
        """Force re-authentication on the next authenticated request."""
        self._cookie = None

    def cookie_header(self) -> Optional[str]:
        """Value for the Cookie request header, or None without a cookie."""
        if self._cookie is None:
            return None
        return f"{COOKIE_NAME}={self._cookie.value}"
