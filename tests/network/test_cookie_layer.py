"""Tests for Cookie header parsing and the cookie injection layer."""

from __future__ import annotations

import httpx

from GcsCensus.network import CookieTransport, parse_cookie_header


class TestParseCookieHeader:
    """Lenient parsing of raw Cookie header values."""

    def test_simple_pairs(self):
        """Semicolon-separated pairs come back in order."""
        assert parse_cookie_header("a=1; b=2") == [("a", "1"), ("b", "2")]

    def test_empty_header(self):
        """Empty and whitespace-only headers yield nothing."""
        assert parse_cookie_header("") == []
        assert parse_cookie_header("  ;  ; ") == []

    def test_quoted_value_is_unwrapped(self):
        """Surrounding double quotes are stripped from values."""
        assert parse_cookie_header('token="abc"') == [("token", "abc")]

    def test_malformed_fragments_are_skipped(self):
        """Fragments without '=' or with an invalid name are dropped."""
        assert parse_cookie_header('a=1; b="2"; =bad; c') == [("a", "1"), ("b", "2")]
        assert parse_cookie_header("bad name=1; ok=2") == [("ok", "2")]

    def test_invalid_value_is_skipped(self):
        """Values containing forbidden characters are dropped."""
        assert parse_cookie_header('a=x"y; b=2') == [("b", "2")]

    def test_empty_value_is_kept(self):
        """A present but empty value is a valid cookie."""
        assert parse_cookie_header("a=; b=2") == [("a", ""), ("b", "2")]


class TestCookieTransport:
    """Cookie injection on outgoing requests."""

    def test_empty_cookie_passes_request_through(self, ok_transport):
        """With nothing configured the same request object reaches the inner layer."""
        transport = CookieTransport(ok_transport, "")
        request = httpx.Request("GET", "https://example.org/", headers={"X-Test": "1"})

        transport.handle_request(request)

        assert ok_transport.requests[0] is request
        assert "cookie" not in ok_transport.requests[0].headers

    def test_unparseable_cookie_behaves_like_empty(self, ok_transport):
        """A header with no valid pairs injects nothing."""
        transport = CookieTransport(ok_transport, "=; ;")
        request = httpx.Request("GET", "https://example.org/")

        transport.handle_request(request)

        assert transport.cookies == ()
        assert ok_transport.requests[0] is request

    def test_cookies_added_and_other_headers_unchanged(self, echo_transport):
        """'a=1; b=2' lands on the request; nothing else changes."""
        transport = CookieTransport(echo_transport, "a=1; b=2")
        request = httpx.Request(
            "POST",
            "https://example.org/upload?x=1",
            headers={"X-Test": "1", "Accept": "text/plain"},
            content=b"payload",
        )

        response = transport.handle_request(request)
        seen = response.json()["headers"]

        assert seen["cookie"] == "a=1; b=2"
        assert seen["x-test"] == "1"
        assert seen["accept"] == "text/plain"
        assert seen["content-length"] == "7"
        forwarded = echo_transport.requests[0]
        assert forwarded.url == request.url
        assert forwarded.method == "POST"
        assert forwarded.read() == b"payload"

    def test_original_request_is_not_mutated(self, ok_transport):
        """The caller's request keeps its own headers."""
        transport = CookieTransport(ok_transport, "a=1")
        request = httpx.Request("GET", "https://example.org/")

        transport.handle_request(request)

        assert "cookie" not in request.headers
        assert ok_transport.requests[0] is not request

    def test_existing_cookie_is_extended(self, echo_transport):
        """Configured cookies are appended after cookies already on the request."""
        transport = CookieTransport(echo_transport, "a=1; b=2")
        request = httpx.Request("GET", "https://example.org/", headers={"Cookie": "z=0"})

        seen = transport.handle_request(request).json()["headers"]

        assert seen["cookie"] == "z=0; a=1; b=2"

    def test_close_propagates(self, ok_transport):
        """Closing the layer closes the inner transport."""
        CookieTransport(ok_transport, "a=1").close()
        assert ok_transport.closed
