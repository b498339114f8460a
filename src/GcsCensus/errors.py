"""Exception hierarchy shared across the transport pipeline.

The pipeline spans configuration parsing, layer construction, credential
acquisition, and per-request delegation. Failures are grouped so callers can
tell fatal startup problems (:class:`PipelineInitError`) apart from
per-request failures (:class:`AuthenticationError`, :class:`RequestCancelled`).

Network failures are not part of this hierarchy: they surface
as the :class:`httpx.TransportError` subclasses raised by the base transport
and every layer passes them through unchanged.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "GcsCensusError",
    "ConfigurationError",
    "PipelineInitError",
    "AuthenticationError",
    "RequestCancelled",
    "DeadlineExceeded",
]


class GcsCensusError(RuntimeError):
    """Base exception for transport pipeline failures."""


class ConfigurationError(GcsCensusError):
    """Raised when configuration files, environment overrides, or values are invalid."""


class PipelineInitError(GcsCensusError):
    """Raised when a pipeline layer cannot be constructed.

    Initialization errors are never recoverable mid-pipeline; the CLI turns
    them into a terminating diagnostic.
    """

    def __init__(self, message: str, *, layer: Optional[str] = None) -> None:
        super().__init__(message)
        self.layer = layer

    def __str__(self) -> str:
        base = super().__str__()
        if self.layer:
            return f"[{self.layer}] {base}"
        return base


class AuthenticationError(GcsCensusError):
    """Raised when no usable credential can be attached to a request."""


class RequestCancelled(GcsCensusError):
    """Raised when a request's cancel token fires before the request completes."""


class DeadlineExceeded(RequestCancelled):
    """Raised when a request's deadline elapses before the request completes."""
