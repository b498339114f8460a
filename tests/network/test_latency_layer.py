"""Tests for artificial latency injection and request cancellation."""

from __future__ import annotations

import threading
import time
from datetime import timedelta

import httpx
import pytest

from GcsCensus.errors import DeadlineExceeded, RequestCancelled
from GcsCensus.network import CANCEL_TOKEN_EXTENSION, CancelToken, LatencyTransport


def _request(token=None) -> httpx.Request:
    extensions = {CANCEL_TOKEN_EXTENSION: token} if token is not None else {}
    return httpx.Request("GET", "https://example.org/", extensions=extensions)


class TestLatencyTransport:
    """Delay injection ahead of the inner transport."""

    def test_negative_delay_rejected(self, ok_transport):
        with pytest.raises(ValueError):
            LatencyTransport(ok_transport, -0.1)

    def test_timedelta_delay(self, ok_transport):
        """Delays may be given as timedelta."""
        assert LatencyTransport(ok_transport, timedelta(milliseconds=250)).delay == 0.25

    def test_zero_delay_is_passthrough(self, ok_transport):
        """A zero delay forwards the same request immediately."""
        transport = LatencyTransport(ok_transport, 0)
        request = _request()

        response = transport.handle_request(request)

        assert response.status_code == 200
        assert ok_transport.requests[0] is request

    def test_delay_is_a_lower_bound(self, ok_transport):
        """The inner transport is reached no earlier than the configured delay."""
        transport = LatencyTransport(ok_transport, 0.2)

        start = time.monotonic()
        response = transport.handle_request(_request())
        elapsed = time.monotonic() - start

        assert response.status_code == 200
        assert elapsed >= 0.19
        assert len(ok_transport.requests) == 1

    def test_cancellation_interrupts_delay(self, ok_transport):
        """A cancelled token ends the wait long before the delay elapses."""
        transport = LatencyTransport(ok_transport, 5.0)
        token = CancelToken()
        timer = threading.Timer(0.05, token.cancel)
        timer.start()

        start = time.monotonic()
        try:
            with pytest.raises(RequestCancelled):
                transport.handle_request(_request(token))
        finally:
            timer.cancel()
        elapsed = time.monotonic() - start

        assert elapsed < 2.0
        assert ok_transport.requests == []

    def test_deadline_shorter_than_delay(self, ok_transport):
        """A deadline inside the delay raises DeadlineExceeded and never delegates."""
        transport = LatencyTransport(ok_transport, 5.0)
        token = CancelToken.with_timeout(0.05)

        start = time.monotonic()
        with pytest.raises(DeadlineExceeded):
            transport.handle_request(_request(token))

        assert time.monotonic() - start < 2.0
        assert ok_transport.requests == []

    def test_already_cancelled_token(self, ok_transport):
        """A token cancelled before the call fails immediately."""
        transport = LatencyTransport(ok_transport, 5.0)
        token = CancelToken()
        token.cancel("caller gave up")

        with pytest.raises(RequestCancelled, match="caller gave up"):
            transport.handle_request(_request(token))

    def test_close_interrupts_wait_without_token(self, ok_transport):
        """Closing the transport releases requests waiting without a token."""
        transport = LatencyTransport(ok_transport, 5.0)
        timer = threading.Timer(0.05, transport.close)
        timer.start()

        start = time.monotonic()
        try:
            with pytest.raises(RequestCancelled):
                transport.handle_request(_request())
        finally:
            timer.cancel()

        assert time.monotonic() - start < 2.0
        assert ok_transport.closed


class TestCancelToken:
    """Cancellation flag and deadline bookkeeping."""

    def test_fresh_token(self):
        token = CancelToken()
        assert not token.is_cancelled()
        assert not token.expired
        assert token.remaining() is None
        token.raise_if_cancelled()

    def test_cancel_records_first_reason(self):
        """Only the first cancellation reason is kept."""
        token = CancelToken()
        token.cancel("first")
        token.cancel("second")

        with pytest.raises(RequestCancelled, match="first"):
            token.raise_if_cancelled()

    def test_remaining_never_negative(self):
        token = CancelToken(deadline=time.monotonic() - 1.0)
        assert token.remaining() == 0.0
        assert token.expired
        with pytest.raises(DeadlineExceeded):
            token.raise_if_cancelled()

    def test_deadline_exceeded_is_a_cancellation(self):
        """Callers catching RequestCancelled also see deadline expiry."""
        assert issubclass(DeadlineExceeded, RequestCancelled)

    def test_wait_returns_after_full_timeout(self):
        token = CancelToken.with_timeout(5.0)
        start = time.monotonic()
        token.wait(0.05)
        assert time.monotonic() - start >= 0.04
