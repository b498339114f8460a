"""Process-level trace and metric export bootstrap.

:class:`TelemetryRuntime` owns one OpenTelemetry ``TracerProvider`` and one
``MeterProvider``: it attaches the configured exporter, enables the client
views (fixed latency buckets), applies the sampling policy, and guarantees the
providers are flushed and shut down exactly once.

Two usage modes:

- **Process mode** (CLI): ``telemetry_session(cfg)`` installs the providers
  globally for the lifetime of the ``with`` block.
- **Isolated mode** (tests, embedding): ``TelemetryRuntime(cfg).start(
  install_global=False)`` and pass ``runtime.tracer_provider`` /
  ``runtime.meter_provider`` to :func:`GcsCensus.network.build_pipeline`.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from typing import Iterator, List, Optional

from opentelemetry import metrics, trace
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    InMemoryMetricReader,
    MetricReader,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.metrics.view import ExplicitBucketHistogramAggregation, View
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.sdk.trace.sampling import (
    ALWAYS_OFF,
    ALWAYS_ON,
    ParentBased,
    Sampler,
    TraceIdRatioBased,
)

from GcsCensus.config.models import TracingConfig
from GcsCensus.errors import PipelineInitError

LOGGER = logging.getLogger(__name__)

# Instrument names shared with GcsCensus.network.tracing.
REQUEST_DURATION = "http.client.request.duration"
REQUEST_COUNT = "http.client.requests"
REQUEST_ERRORS = "http.client.request.errors"

# Global providers can be installed once per process in OpenTelemetry.
_GLOBAL_LOCK = threading.Lock()
_GLOBAL_INSTALLED = False


def build_sampler(cfg: TracingConfig) -> Sampler:
    """Map the configured sampling policy to an SDK sampler."""
    if cfg.sampler == "always":
        return ALWAYS_ON
    if cfg.sampler == "never":
        return ALWAYS_OFF
    return ParentBased(root=TraceIdRatioBased(cfg.sample_ratio))


def build_client_views(cfg: TracingConfig) -> List[View]:
    """Default client views: the latency histogram with configured buckets."""
    return [
        View(
            instrument_name=REQUEST_DURATION,
            aggregation=ExplicitBucketHistogramAggregation(boundaries=list(cfg.latency_buckets_s)),
        )
    ]


class TelemetryRuntime:
    """Owns the tracer/meter providers for one pipeline lifetime."""

    def __init__(self, cfg: Optional[TracingConfig] = None) -> None:
        self.cfg = cfg or TracingConfig()
        self.tracer_provider: Optional[TracerProvider] = None
        self.meter_provider: Optional[MeterProvider] = None
        self.span_exporter: Optional[SpanExporter] = None
        self.metric_reader: Optional[MetricReader] = None
        self._lock = threading.Lock()
        self._started = False
        self._shutdown = False

    @property
    def started(self) -> bool:
        return self._started

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def _resource(self) -> Resource:
        attributes = {"service.name": self.cfg.service_name}
        if self.cfg.project_id:
            attributes["gcp.project_id"] = self.cfg.project_id
        return Resource.create(attributes)

    def _build_exporters(self) -> None:
        exporter = self.cfg.exporter
        if exporter == "console":
            self.span_exporter = ConsoleSpanExporter()
            self.metric_reader = PeriodicExportingMetricReader(
                ConsoleMetricExporter(),
                export_interval_millis=self.cfg.metric_export_interval_s * 1000.0,
            )
        elif exporter == "otlp":
            from opentelemetry.exporter.otlp.proto.http.metric_exporter import (
                OTLPMetricExporter,
            )
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

            base = self.cfg.otlp_endpoint.rstrip("/")
            self.span_exporter = OTLPSpanExporter(endpoint=f"{base}/v1/traces")
            self.metric_reader = PeriodicExportingMetricReader(
                OTLPMetricExporter(endpoint=f"{base}/v1/metrics"),
                export_interval_millis=self.cfg.metric_export_interval_s * 1000.0,
            )
        elif exporter == "memory":
            self.span_exporter = InMemorySpanExporter()
            self.metric_reader = InMemoryMetricReader()
        else:
            self.span_exporter = None
            self.metric_reader = None

    def start(self, *, install_global: bool = True) -> "TelemetryRuntime":
        """Build the providers and, optionally, install them process-wide.

        Raises:
            PipelineInitError: If exporters cannot be created or global
                providers were already installed by another runtime
        """
        global _GLOBAL_INSTALLED

        with self._lock:
            if self._started:
                return self
            try:
                self._build_exporters()
            except Exception as e:
                raise PipelineInitError(
                    f"cannot create {self.cfg.exporter} exporter: {e}", layer="telemetry"
                ) from e

            resource = self._resource()
            self.tracer_provider = TracerProvider(
                resource=resource, sampler=build_sampler(self.cfg)
            )
            if self.span_exporter is not None:
                processor = (
                    SimpleSpanProcessor(self.span_exporter)
                    if isinstance(self.span_exporter, InMemorySpanExporter)
                    else BatchSpanProcessor(self.span_exporter)
                )
                self.tracer_provider.add_span_processor(processor)

            readers = [self.metric_reader] if self.metric_reader is not None else []
            self.meter_provider = MeterProvider(
                resource=resource,
                metric_readers=readers,
                views=build_client_views(self.cfg),
            )

            if install_global:
                with _GLOBAL_LOCK:
                    if _GLOBAL_INSTALLED:
                        raise PipelineInitError(
                            "global telemetry providers are already installed",
                            layer="telemetry",
                        )
                    trace.set_tracer_provider(self.tracer_provider)
                    metrics.set_meter_provider(self.meter_provider)
                    _GLOBAL_INSTALLED = True

            self._started = True
            LOGGER.info(
                "telemetry started",
                extra={
                    "exporter": self.cfg.exporter,
                    "sampler": self.cfg.sampler,
                    "global": install_global,
                },
            )
            return self

    def shutdown(self) -> None:
        """Flush and shut down both providers; later calls are no-ops."""
        with self._lock:
            if not self._started or self._shutdown:
                return
            self._shutdown = True
            tracer_provider, meter_provider = self.tracer_provider, self.meter_provider

        if tracer_provider is None or meter_provider is None:
            return
        try:
            tracer_provider.force_flush()
            meter_provider.force_flush()
        finally:
            tracer_provider.shutdown()
            meter_provider.shutdown()
            LOGGER.info("telemetry flushed and shut down", extra={"exporter": self.cfg.exporter})

    def __enter__(self) -> "TelemetryRuntime":
        return self.start(install_global=False)

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()


@contextlib.contextmanager
def telemetry_session(
    cfg: Optional[TracingConfig] = None, *, install_global: bool = True
) -> Iterator[TelemetryRuntime]:
    """Start telemetry for the duration of the block; flush exactly once on exit."""
    runtime = TelemetryRuntime(cfg).start(install_global=install_global)
    try:
        yield runtime
    finally:
        runtime.shutdown()
