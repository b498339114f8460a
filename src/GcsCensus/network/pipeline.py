# === NAVMAP v1 ===
# {
#   "module": "GcsCensus.network.pipeline",
#   "purpose": "Assemble the ordered transport chain and scope its lifetime.",
#   "sections": [
#     {
#       "id": "transportpipeline",
#       "name": "TransportPipeline",
#       "anchor": "class-transportpipeline",
#       "kind": "class"
#     },
#     {
#       "id": "build-pipeline",
#       "name": "build_pipeline",
#       "anchor": "function-build-pipeline",
#       "kind": "function"
#     },
#     {
#       "id": "open-client",
#       "name": "open_client",
#       "anchor": "function-open-client",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Pipeline assembly: one ordered chain of transports from configuration.

Architecture (reference order, innermost first)::

    CookieTransport          (only when a cookie string is configured)
      └─ TracingTransport    (span covers credential acquisition)
          └─ CredentialsTransport
              └─ LatencyTransport   (only when latency_ms > 0)
                  └─ NetworkTransport → httpx.HTTPTransport

``config.pipeline.layer_order`` lists layers from innermost to outermost; a
listed layer is skipped when its configuration disables it. Every failure
while building a layer is raised as :class:`PipelineInitError` naming that
layer, since a half-built chain is never usable.
"""

from __future__ import annotations

import contextlib
import logging
from typing import Callable, Dict, Iterator, List, Optional, Tuple

import httpx
from opentelemetry.metrics import MeterProvider
from opentelemetry.trace import TracerProvider

from GcsCensus import __version__
from GcsCensus.config.models import CensusConfig
from GcsCensus.errors import PipelineInitError
from GcsCensus.network.base import NetworkTransport, build_base_transport, build_timeout
from GcsCensus.network.cookies import CookieTransport
from GcsCensus.network.credentials import (
    CredentialSource,
    CredentialsTransport,
    build_credential_source,
)
from GcsCensus.network.latency import LatencyTransport
from GcsCensus.network.tracing import (
    INSTRUMENTATION_NAME,
    ClientInstruments,
    TracingTransport,
    build_propagator,
)
from GcsCensus.observability.telemetry import TelemetryRuntime

LOGGER = logging.getLogger(__name__)

LayerFactory = Callable[[httpx.BaseTransport], httpx.BaseTransport]


class TransportPipeline(httpx.BaseTransport):
    """The assembled chain, usable wherever an ``httpx.BaseTransport`` is.

    Attributes:
        layers: Names of the applied layers, innermost first
        transport: Outermost layer requests enter through
    """

    def __init__(self, transport: httpx.BaseTransport, layers: Tuple[str, ...]) -> None:
        self.transport = transport
        self.layers = layers
        self._closed = False

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        return self.transport.handle_request(request)

    def describe(self) -> str:
        """Human-readable chain, outermost first (``cookies → tracing → … → network``)."""
        return " → ".join(reversed(self.layers))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.transport.close()


def _enabled_layers(config: CensusConfig) -> Dict[str, bool]:
    """Whether each layer is both listed in the order and switched on."""
    listed = set(config.pipeline.layer_order)
    switched_on = {
        "latency": config.pipeline.latency_ms > 0,
        "credentials": config.credentials.enabled,
        "tracing": config.tracing.enabled,
        "cookies": bool(config.pipeline.cookie),
    }
    return {name: on and name in listed for name, on in switched_on.items()}


def active_layers(config: CensusConfig) -> Tuple[str, ...]:
    """Layer names :func:`build_pipeline` would apply for ``config``, innermost first."""
    enabled = _enabled_layers(config)
    return ("network",) + tuple(name for name in config.pipeline.layer_order if enabled[name])


def _layer_factories(
    config: CensusConfig,
    *,
    credential_source: Optional[CredentialSource],
    tracer_provider: Optional[TracerProvider],
    meter_provider: Optional[MeterProvider],
) -> Dict[str, Optional[LayerFactory]]:
    """Map each layer name to a wrapping function, or ``None`` when disabled."""
    pipeline_cfg = config.pipeline
    factories: Dict[str, Optional[LayerFactory]] = {
        "latency": None,
        "credentials": None,
        "tracing": None,
        "cookies": None,
    }

    enabled = _enabled_layers(config)

    if enabled["latency"]:
        delay = pipeline_cfg.latency_ms / 1000.0
        factories["latency"] = lambda inner: LatencyTransport(inner, delay)

    if enabled["credentials"]:
        source = credential_source or build_credential_source(config.credentials)
        factories["credentials"] = lambda inner: CredentialsTransport(inner, source)

    if enabled["tracing"]:
        tracer = (
            tracer_provider.get_tracer(INSTRUMENTATION_NAME, __version__)
            if tracer_provider
            else None
        )
        instruments = (
            ClientInstruments.from_meter(
                meter_provider.get_meter(INSTRUMENTATION_NAME, __version__)
            )
            if meter_provider
            else None
        )
        propagator = build_propagator(config.tracing.propagation)
        factories["tracing"] = lambda inner: TracingTransport(
            inner, tracer=tracer, propagator=propagator, instruments=instruments
        )

    if enabled["cookies"]:
        factories["cookies"] = lambda inner: CookieTransport(inner, pipeline_cfg.cookie)

    return factories


def build_pipeline(
    config: Optional[CensusConfig] = None,
    *,
    base: Optional[httpx.BaseTransport] = None,
    credential_source: Optional[CredentialSource] = None,
    tracer_provider: Optional[TracerProvider] = None,
    meter_provider: Optional[MeterProvider] = None,
) -> TransportPipeline:
    """Assemble the transport chain described by ``config``.

    Args:
        config: Pipeline configuration (defaults when omitted)
        base: Network transport to wrap (default: ``httpx.HTTPTransport``);
            tests pass an ``httpx.MockTransport`` here
        credential_source: Overrides the configured credential source
        tracer_provider: Tracer provider for spans (default: global)
        meter_provider: Meter provider for client metrics (default: global)

    Returns:
        TransportPipeline wrapping the outermost layer

    Raises:
        PipelineInitError: If any layer fails to initialize
    """
    config = config or CensusConfig()
    layers: List[str] = ["network"]

    try:
        base = base if base is not None else build_base_transport(config.http)
    except Exception as e:
        raise PipelineInitError(f"cannot create base transport: {e}", layer="network") from e
    transport: httpx.BaseTransport = NetworkTransport(base)

    try:
        factories = _layer_factories(
            config,
            credential_source=credential_source,
            tracer_provider=tracer_provider,
            meter_provider=meter_provider,
        )
    except PipelineInitError:
        transport.close()
        raise
    except Exception as e:
        transport.close()
        raise PipelineInitError(f"cannot configure pipeline: {e}") from e

    for name in config.pipeline.layer_order:
        factory = factories.get(name)
        if factory is None:
            continue
        try:
            transport = factory(transport)
        except Exception as e:
            transport.close()
            raise PipelineInitError(f"cannot create layer: {e}", layer=name) from e
        layers.append(name)

    pipeline = TransportPipeline(transport, tuple(layers))
    LOGGER.info(
        "transport pipeline assembled",
        extra={"layers": list(pipeline.layers), "config_hash": config.config_hash()[:8]},
    )
    return pipeline


def build_client(
    config: CensusConfig, transport: httpx.BaseTransport, **client_kwargs: object
) -> httpx.Client:
    """An ``httpx.Client`` that sends everything through ``transport``."""
    headers = {"User-Agent": config.http.user_agent}
    return httpx.Client(
        transport=transport,
        timeout=build_timeout(config.http),
        headers=headers,
        follow_redirects=False,
        **client_kwargs,  # type: ignore[arg-type]
    )


@contextlib.contextmanager
def open_client(
    config: Optional[CensusConfig] = None,
    *,
    base: Optional[httpx.BaseTransport] = None,
    credential_source: Optional[CredentialSource] = None,
    telemetry: Optional[TelemetryRuntime] = None,
    install_global: bool = False,
) -> Iterator[httpx.Client]:
    """Scope telemetry, pipeline, and client to one ``with`` block.

    Telemetry starts before the pipeline is built and is flushed exactly
    once after the client is closed, including when the block raises or
    pipeline construction fails.

    Example:
        >>> with open_client(load_config("census.yaml")) as client:
        ...     client.get("https://storage.googleapis.com/storage/v1/b/singleton")
    """
    config = config or CensusConfig()
    runtime = telemetry or TelemetryRuntime(config.tracing)
    runtime.start(install_global=install_global)
    try:
        pipeline = build_pipeline(
            config,
            base=base,
            credential_source=credential_source,
            tracer_provider=runtime.tracer_provider,
            meter_provider=runtime.meter_provider,
        )
        with build_client(config, pipeline) as client:
            yield client
    finally:
        runtime.shutdown()
