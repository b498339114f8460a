"""GcsCensus: an instrumented HTTPX transport pipeline for storage clients.

The package assembles a linear chain of :class:`httpx.BaseTransport` layers
(latency injection, credentials, trace propagation, cookie injection) over a
base network transport and hands the result to any ``httpx.Client``.

Example:
    >>> import httpx
    >>> from GcsCensus.config import CensusConfig
    >>> from GcsCensus.network import build_pipeline
    >>> pipeline = build_pipeline(CensusConfig())
    >>> client = httpx.Client(transport=pipeline)
"""

__version__ = "0.3.0"

__all__ = ["__version__"]
