"""Artificial latency injection for fault-injection testing.

:class:`LatencyTransport` holds every request for a fixed delay before
delegating, simulating a slow backend. The wait is always interruptible:
it blocks on the request's :class:`CancelToken` when one is attached and on
the transport's own shutdown event otherwise, so neither cancellation nor
:meth:`LatencyTransport.close` has to wait for the full delay.
"""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Union

import httpx

from GcsCensus.errors import RequestCancelled
from GcsCensus.network.cancellation import get_cancel_token

LOGGER = logging.getLogger(__name__)


class LatencyTransport(httpx.BaseTransport):
    """Delay each request by ``delay`` before handing it to ``inner``."""

    def __init__(self, inner: httpx.BaseTransport, delay: Union[float, timedelta]) -> None:
        seconds = delay.total_seconds() if isinstance(delay, timedelta) else float(delay)
        if seconds < 0:
            raise ValueError("delay must be >= 0")
        self._inner = inner
        self._delay = seconds
        self._closed = threading.Event()

    @property
    def inner(self) -> httpx.BaseTransport:
        return self._inner

    @property
    def delay(self) -> float:
        """Injected delay in seconds."""
        return self._delay

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        if self._delay > 0:
            LOGGER.debug(
                "injecting latency",
                extra={"delay_s": self._delay, "method": request.method, "host": request.url.host},
            )
            token = get_cancel_token(request)
            if token is not None:
                token.wait(self._delay)
            elif self._closed.wait(self._delay):
                raise RequestCancelled("transport closed during injected latency")
        return self._inner.handle_request(request)

    def close(self) -> None:
        self._closed.set()
        self._inner.close()
