# === NAVMAP v1 ===
# {
#   "module": "GcsCensus.network.tracing",
#   "purpose": "Distributed-trace propagation and client-observed metrics for outgoing requests.",
#   "sections": [
#     {
#       "id": "clientinstruments",
#       "name": "ClientInstruments",
#       "anchor": "class-clientinstruments",
#       "kind": "class"
#     },
#     {
#       "id": "build-propagator",
#       "name": "build_propagator",
#       "anchor": "function-build-propagator",
#       "kind": "function"
#     },
#     {
#       "id": "tracingtransport",
#       "name": "TracingTransport",
#       "anchor": "class-tracingtransport",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Distributed-trace propagation and client-observed metrics.

Every request passing through :class:`TracingTransport` gets one CLIENT span,
started as a child of whatever span is current on the calling thread. The
span context is injected into the outgoing headers with the configured
propagator, and the span is ended exactly once whatever the outcome.

Client views recorded per round trip:
  - http.client.request.duration: round-trip latency histogram (seconds)
  - http.client.requests: round trips attempted
  - http.client.request.errors: network errors, cancellations, and >= 400
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Dict, Optional

import httpx
from opentelemetry import metrics, trace
from opentelemetry.baggage.propagation import W3CBaggagePropagator
from opentelemetry.metrics import Counter, Histogram, Meter
from opentelemetry.propagators.composite import CompositePropagator
from opentelemetry.propagators.textmap import TextMapPropagator
from opentelemetry.trace import SpanKind, Status, StatusCode, Tracer
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from GcsCensus.errors import RequestCancelled
from GcsCensus.network._requests import clone_request
from GcsCensus.observability.telemetry import REQUEST_COUNT, REQUEST_DURATION, REQUEST_ERRORS

LOGGER = logging.getLogger(__name__)

INSTRUMENTATION_NAME = "GcsCensus.network"


# ============================================================================
# Metrics
# ============================================================================


@dataclass(frozen=True)
class ClientInstruments:
    """OpenTelemetry instruments backing the default client views."""

    duration: Histogram
    requests: Counter
    errors: Counter

    @classmethod
    def from_meter(cls, meter: Meter) -> "ClientInstruments":
        return cls(
            duration=meter.create_histogram(
                name=REQUEST_DURATION,
                unit="s",
                description="Client-observed round-trip latency",
            ),
            requests=meter.create_counter(
                name=REQUEST_COUNT,
                unit="1",
                description="HTTP round trips, successful or not",
            ),
            errors=meter.create_counter(
                name=REQUEST_ERRORS,
                unit="1",
                description="Round trips that failed or returned status >= 400",
            ),
        )


# ============================================================================
# Propagation
# ============================================================================


def build_propagator(name: str = "tracecontext") -> TextMapPropagator:
    """Return the propagator for a configured header format.

    Args:
        name: ``tracecontext`` (W3C traceparent + baggage), ``b3`` (single
            header), ``b3multi``, or ``cloudtrace`` (X-Cloud-Trace-Context)

    Raises:
        ValueError: If ``name`` is not a known format
    """
    if name == "tracecontext":
        return CompositePropagator([TraceContextTextMapPropagator(), W3CBaggagePropagator()])
    if name == "b3":
        from opentelemetry.propagators.b3 import B3SingleFormat

        return B3SingleFormat()
    if name == "b3multi":
        from opentelemetry.propagators.b3 import B3MultiFormat

        return B3MultiFormat()
    if name == "cloudtrace":
        from opentelemetry.propagators.cloud_trace_propagator import CloudTraceFormatPropagator

        return CloudTraceFormatPropagator()
    raise ValueError(f"Unknown propagation format: {name!r}")


def _redact_url(url: httpx.URL) -> str:
    """Keep scheme, host, port and path; drop query and fragment."""
    return str(url.copy_with(query=None, fragment=None))


def _error_type(exc: BaseException) -> str:
    if isinstance(exc, RequestCancelled):
        return "cancelled"
    return type(exc).__name__


# ============================================================================
# Transport
# ============================================================================


class TracingTransport(httpx.BaseTransport):
    """Wrap each round trip in a CLIENT span and record client metrics.

    Args:
        inner: Next transport in the chain
        tracer: Tracer to start spans with (default: global provider)
        propagator: Header format injector (default: W3C trace context)
        instruments: Metric instruments (default: from the global meter)
    """

    def __init__(
        self,
        inner: httpx.BaseTransport,
        *,
        tracer: Optional[Tracer] = None,
        propagator: Optional[TextMapPropagator] = None,
        instruments: Optional[ClientInstruments] = None,
    ) -> None:
        self._inner = inner
        self._tracer = tracer or trace.get_tracer(INSTRUMENTATION_NAME)
        self._propagator = propagator or build_propagator()
        self._instruments = instruments or ClientInstruments.from_meter(
            metrics.get_meter(INSTRUMENTATION_NAME)
        )

    @property
    def inner(self) -> httpx.BaseTransport:
        return self._inner

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        attributes: Dict[str, object] = {
            "http.request.method": method,
            "url.full": _redact_url(request.url),
            "server.address": request.url.host,
        }
        if request.url.port is not None:
            attributes["server.port"] = request.url.port

        metric_attrs: Dict[str, object] = {
            "http.request.method": method,
            "server.address": request.url.host,
        }
        start = time.perf_counter()
        with self._tracer.start_as_current_span(
            f"HTTP {method}",
            kind=SpanKind.CLIENT,
            attributes=attributes,
            record_exception=False,
            set_status_on_exception=False,
        ) as span:
            try:
                carrier: Dict[str, str] = {}
                self._propagator.inject(carrier)
                headers = request.headers.copy()
                headers.update(carrier)
                response = self._inner.handle_request(clone_request(request, headers=headers))
            except BaseException as exc:
                error_type = _error_type(exc)
                span.record_exception(exc)
                span.set_attribute("error.type", error_type)
                span.set_status(Status(StatusCode.ERROR, str(exc) or error_type))
                metric_attrs["error.type"] = error_type
                self._instruments.errors.add(1, attributes=metric_attrs)
                raise
            else:
                status = response.status_code
                span.set_attribute("http.response.status_code", status)
                metric_attrs["http.response.status_code"] = status
                if status >= 400:
                    span.set_attribute("error.type", str(status))
                    span.set_status(Status(StatusCode.ERROR))
                    self._instruments.errors.add(
                        1, attributes={**metric_attrs, "error.type": str(status)}
                    )
                return response
            finally:
                elapsed = time.perf_counter() - start
                self._instruments.duration.record(elapsed, attributes=metric_attrs)
                self._instruments.requests.add(1, attributes=metric_attrs)
                LOGGER.debug(
                    "round trip",
                    extra={
                        "method": method,
                        "host": request.url.host,
                        "status": metric_attrs.get("http.response.status_code"),
                        "elapsed_ms": round(elapsed * 1000.0, 2),
                    },
                )

    def close(self) -> None:
        self._inner.close()
