"""Base network transport and its cancellation-aware adapter.

The base transport is plain :class:`httpx.HTTPTransport`: connection
establishment, TLS, HTTP/2 and pooling all live there. It is built with
``retries=0``; retry policy, if one is ever wanted, belongs above the chain.

:class:`NetworkTransport` is the innermost pipeline layer. It refuses to send
once the request's :class:`CancelToken` has fired and narrows the request's
timeout budget to the token's remaining deadline. A timeout caused by that
deadline surfaces as :class:`DeadlineExceeded`, and a cancel that lands while
the send is in flight surfaces as :class:`RequestCancelled` (the response, if
any, is closed). Every other network error propagates untouched.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

import httpx

from GcsCensus.config.models import HttpConfig
from GcsCensus.errors import DeadlineExceeded, RequestCancelled
from GcsCensus.network._requests import clone_request
from GcsCensus.network.cancellation import get_cancel_token

LOGGER = logging.getLogger(__name__)

_TIMEOUT_KEYS = ("connect", "read", "write", "pool")


def build_base_transport(cfg: Optional[HttpConfig] = None) -> httpx.HTTPTransport:
    """Build the network-performing transport from ``cfg``."""
    cfg = cfg or HttpConfig()
    limits = httpx.Limits(
        max_connections=cfg.max_connections,
        max_keepalive_connections=cfg.max_keepalive_connections,
        keepalive_expiry=cfg.keepalive_expiry_s,
    )
    transport = httpx.HTTPTransport(
        verify=cfg.verify_tls,
        http2=cfg.http2,
        limits=limits,
        retries=0,
    )
    LOGGER.debug(
        "base transport created",
        extra={"http2": cfg.http2, "max_connections": cfg.max_connections},
    )
    return transport


def build_timeout(cfg: Optional[HttpConfig] = None) -> httpx.Timeout:
    """Client-level timeout budget matching ``cfg``."""
    cfg = cfg or HttpConfig()
    return httpx.Timeout(
        connect=cfg.timeout_connect_s,
        read=cfg.timeout_read_s,
        write=cfg.timeout_write_s,
        pool=cfg.timeout_pool_s,
    )


class NetworkTransport(httpx.BaseTransport):
    """Innermost layer: honours cancel tokens, then hands off to the network."""

    def __init__(self, inner: httpx.BaseTransport) -> None:
        self._inner = inner

    @property
    def inner(self) -> httpx.BaseTransport:
        return self._inner

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        token = get_cancel_token(request)
        if token is None:
            return self._inner.handle_request(request)

        token.raise_if_cancelled()
        remaining = token.remaining()
        if remaining is not None:
            request = clone_request(
                request,
                extensions={
                    **request.extensions,
                    "timeout": _narrow_timeout(request.extensions.get("timeout"), remaining),
                },
            )

        try:
            response = self._inner.handle_request(request)
        except httpx.TransportError as e:
            if token.is_cancelled():
                raise RequestCancelled("request cancelled during send") from e
            if isinstance(e, httpx.TimeoutException) and token.expired:
                raise DeadlineExceeded("request deadline exceeded") from e
            raise

        # Cancelled while the send was in flight.
        if token.is_cancelled():
            response.close()
            token.raise_if_cancelled()
        return response

    def close(self) -> None:
        self._inner.close()


def _narrow_timeout(
    timeout: Optional[Dict[str, Optional[float]]], remaining: float
) -> Dict[str, float]:
    """Cap every phase of ``timeout`` at ``remaining`` seconds."""
    current = timeout or {}
    narrowed: Dict[str, float] = {}
    for key in _TIMEOUT_KEYS:
        value = current.get(key)
        narrowed[key] = remaining if value is None else min(value, remaining)
    return narrowed
