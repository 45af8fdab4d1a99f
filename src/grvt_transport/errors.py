"""
errors.py – Exception hierarchy for the GRVT transports.

    GRVTError
    ├── TransportError
    │   ├── WebSocketRequestError
    │   │   ├── WebSocketConnectionError   socket failed to open / closed under a request
    │   │   ├── SubscriptionTimeoutError   no ack within the request window
    │   │   └── ProtocolError              server replied with {code, message}
    │   ├── HttpRequestError               bad status, non-JSON body, network failure
    │   └── RequestCancelledError          the caller's cancel event fired
    └── AuthConfigError                    authenticated call without an API key

Every class carries the context needed to tell failures apart without
matching on message text.
"""

from __future__ import annotations

from typing import Any, Optional


class GRVTError(Exception):
    """Base class for every error raised by this package."""


class TransportError(GRVTError):
    """Raised when a request fails at the transport level."""


# ---------------------------------------------------------------------------
# WebSocket
# ---------------------------------------------------------------------------

class WebSocketRequestError(TransportError):
    """Raised when a WebSocket operation fails."""


class WebSocketConnectionError(WebSocketRequestError):
    """The socket could not be opened, or closed while a request was in flight."""


class SubscriptionTimeoutError(WebSocketRequestError):
    """A subscribe round-trip exceeded the request window."""

    def __init__(self, request_id: int, timeout: float) -> None:
        self.request_id = request_id
        self.timeout    = timeout
        super().__init__(f"Subscription request {request_id} timed out after {timeout:g} s")


class ProtocolError(WebSocketRequestError):
    """The server answered a request with an error frame."""

    def __init__(self, code: int, message: str, request_id: Optional[int] = None) -> None:
        self.code       = code
        self.message    = message
        self.request_id = request_id
        super().__init__(f"GRVT WebSocket error [{code}]: {message}")


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

class HttpRequestError(TransportError):
    """
    Raised when an HTTP request fails.

    Attributes
    ----------
    status   : HTTP status code, or None if no response was received
    reason   : HTTP reason phrase, if any
    body     : best-effort response body text
    response : the underlying aiohttp / requests response object
    """

    def __init__(
        self,
        status:   Optional[int] = None,
        body:     Optional[str] = None,
        *,
        reason:   Optional[str] = None,
        response: Any           = None,
        message:  Optional[str] = None,
    ) -> None:
        self.status   = status
        self.reason   = reason
        self.body     = body
        self.response = response

        if message is None:
            if status is not None:
                message = f"{status} {reason or ''}".strip()
                if body:
                    message += f" - {body}"
            else:
                message = body or "Unknown HTTP request error"
        super().__init__(message)


class RequestCancelledError(TransportError):
    """The caller-supplied cancel event fired before the operation completed."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class AuthConfigError(GRVTError):
    """An authenticated call was attempted without an API key configured."""
