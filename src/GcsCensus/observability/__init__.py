"""Trace and metric export bootstrap for the transport pipeline.

- telemetry: provider construction, client views, sampling, scoped shutdown
"""

from GcsCensus.observability.telemetry import (
    REQUEST_COUNT,
    REQUEST_DURATION,
    REQUEST_ERRORS,
    TelemetryRuntime,
    build_client_views,
    build_sampler,
    telemetry_session,
)

__all__ = [
    "REQUEST_COUNT",
    "REQUEST_DURATION",
    "REQUEST_ERRORS",
    "TelemetryRuntime",
    "build_client_views",
    "build_sampler",
    "telemetry_session",
]
