"""Ad-hoc cookie injection.

A raw ``Cookie`` header value (``"a=1; b=2"``) is parsed once, when the
transport is built, into discrete name/value pairs. Each request then leaves
with those pairs appended to its ``Cookie`` header. Parsing is lenient:
fragments with an invalid name or value are logged and skipped.
"""

from __future__ import annotations

import logging
import string
from typing import List, Tuple

import httpx

from GcsCensus.network._requests import clone_request

LOGGER = logging.getLogger(__name__)

CookiePair = Tuple[str, str]

# RFC 7230 token characters.
_TOKEN_CHARS = frozenset(string.ascii_letters + string.digits + "!#$%&'*+-.^_`|~")


def _valid_name(name: str) -> bool:
    return bool(name) and all(ch in _TOKEN_CHARS for ch in name)


def _valid_value_char(ch: str) -> bool:
    return 0x20 <= ord(ch) < 0x7F and ch not in '";\\'


def _parse_value(raw: str) -> str | None:
    value = raw
    if len(value) > 1 and value[0] == '"' and value[-1] == '"':
        value = value[1:-1]
    if all(_valid_value_char(ch) for ch in value):
        return value
    return None


def parse_cookie_header(header: str) -> List[CookiePair]:
    """Split a ``Cookie`` header value into ``(name, value)`` pairs.

    Empty fragments are ignored; malformed ones are skipped with a warning.

    Example:
        >>> parse_cookie_header('a=1; b="2"; =bad; c')
        [('a', '1'), ('b', '2')]
    """
    pairs: List[CookiePair] = []
    for part in header.split(";"):
        part = part.strip()
        if not part:
            continue
        name, sep, raw_value = part.partition("=")
        name = name.strip()
        if not sep or not _valid_name(name):
            LOGGER.warning("skipping malformed cookie fragment", extra={"fragment": part})
            continue
        value = _parse_value(raw_value.strip())
        if value is None:
            LOGGER.warning("skipping cookie with invalid value", extra={"cookie_name": name})
            continue
        pairs.append((name, value))
    return pairs


class CookieTransport(httpx.BaseTransport):
    """Append configured cookies to every outgoing request."""

    def __init__(self, inner: httpx.BaseTransport, cookie_header: str = "") -> None:
        self._inner = inner
        self._cookies: Tuple[CookiePair, ...] = tuple(parse_cookie_header(cookie_header or ""))
        self._rendered = "; ".join(f"{name}={value}" for name, value in self._cookies)

    @property
    def inner(self) -> httpx.BaseTransport:
        return self._inner

    @property
    def cookies(self) -> Tuple[CookiePair, ...]:
        return self._cookies

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        if not self._cookies:
            return self._inner.handle_request(request)

        headers = request.headers.copy()
        existing = headers.get("cookie")
        headers["Cookie"] = f"{existing}; {self._rendered}" if existing else self._rendered
        return self._inner.handle_request(clone_request(request, headers=headers))

    def close(self) -> None:
        self._inner.close()
