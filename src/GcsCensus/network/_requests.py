"""Request cloning shared by the header-rewriting pipeline layers."""

from __future__ import annotations

from typing import Any, Mapping, Optional

import httpx


def clone_request(
    request: httpx.Request,
    *,
    headers: Optional[httpx.Headers] = None,
    extensions: Optional[Mapping[str, Any]] = None,
) -> httpx.Request:
    """Return a new request sharing ``request``'s body stream.

    The header set and the ``extensions`` mapping are copies, so a layer can
    rewrite either without touching a request object another caller holds.
    The body stream is handed over as-is and never read here.
    """

    cloned = httpx.Request(
        method=request.method,
        url=request.url,
        headers=headers if headers is not None else request.headers.copy(),
        stream=request.stream,
        extensions=dict(extensions if extensions is not None else request.extensions),
    )
    return cloned
