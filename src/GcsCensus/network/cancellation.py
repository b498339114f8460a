"""Per-request cancellation and deadline signalling.

HTTPX has no request context object, so a :class:`CancelToken` rides along in
``request.extensions`` under :data:`CANCEL_TOKEN_EXTENSION`::

    token = CancelToken.with_timeout(2.0)
    client.get(url, extensions={CANCEL_TOKEN_EXTENSION: token})

Any thread may call :meth:`CancelToken.cancel`; layers that wait (the latency
injector) wake immediately, and layers that send (the base transport) refuse
to start once the token has fired.
"""

from __future__ import annotations

import threading
import time
from typing import Optional

import httpx

from GcsCensus.errors import DeadlineExceeded, RequestCancelled

__all__ = ["CANCEL_TOKEN_EXTENSION", "CancelToken", "get_cancel_token"]

CANCEL_TOKEN_EXTENSION = "cancel_token"


class CancelToken:
    """Cancellation flag with an optional absolute deadline (``time.monotonic`` clock)."""

    def __init__(self, *, deadline: Optional[float] = None) -> None:
        self._event = threading.Event()
        self._deadline = deadline
        self._reason: Optional[str] = None

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancelToken":
        """Create a token whose deadline is ``seconds`` from now."""
        return cls(deadline=time.monotonic() + seconds)

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    def is_cancelled(self) -> bool:
        """True once :meth:`cancel` has been called."""
        return self._event.is_set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline (never negative), or ``None`` without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def cancel(self, reason: str = "request cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise :class:`RequestCancelled` or :class:`DeadlineExceeded` if the token fired."""
        if self._event.is_set():
            raise RequestCancelled(self._reason or "request cancelled")
        if self.expired:
            raise DeadlineExceeded("request deadline exceeded")

    def wait(self, timeout: float) -> None:
        """Block up to ``timeout`` seconds, raising as soon as the token fires.

        Returns normally only when the full ``timeout`` elapsed without
        cancellation and without crossing the deadline.
        """
        self.raise_if_cancelled()
        remaining = self.remaining()
        if remaining is not None and remaining < timeout:
            if self._event.wait(remaining):
                self.raise_if_cancelled()
            raise DeadlineExceeded("request deadline exceeded")
        if self._event.wait(timeout):
            self.raise_if_cancelled()


def get_cancel_token(request: httpx.Request) -> Optional[CancelToken]:
    """Return the token attached to ``request``, if any."""
    token = request.extensions.get(CANCEL_TOKEN_EXTENSION)
    if isinstance(token, CancelToken):
        return token
    return None
