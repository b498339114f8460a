"""HTTPX transport layers and the pipeline that chains them.

Modules:
- base: network-performing transport and the cancel-aware innermost layer
- latency: artificial delay injection
- cookies: Cookie header parsing and injection
- credentials: bearer-token sources and the credentialing layer
- tracing: span creation, header propagation, client metrics
- pipeline: ordered assembly and client lifetime scoping
"""

from GcsCensus.network.base import NetworkTransport, build_base_transport, build_timeout
from GcsCensus.network.cancellation import CANCEL_TOKEN_EXTENSION, CancelToken, get_cancel_token
from GcsCensus.network.cookies import CookieTransport, parse_cookie_header
from GcsCensus.network.credentials import (
    Credential,
    CredentialSource,
    CredentialsTransport,
    GoogleCredentialSource,
    StaticCredentialSource,
    build_credential_source,
    normalize_scopes,
)
from GcsCensus.network.latency import LatencyTransport
from GcsCensus.network.pipeline import (
    TransportPipeline,
    active_layers,
    build_client,
    build_pipeline,
    open_client,
)
from GcsCensus.network.tracing import (
    INSTRUMENTATION_NAME,
    ClientInstruments,
    TracingTransport,
    build_propagator,
)

__all__ = [
    "CANCEL_TOKEN_EXTENSION",
    "INSTRUMENTATION_NAME",
    "CancelToken",
    "ClientInstruments",
    "CookieTransport",
    "Credential",
    "CredentialSource",
    "CredentialsTransport",
    "GoogleCredentialSource",
    "LatencyTransport",
    "NetworkTransport",
    "StaticCredentialSource",
    "TracingTransport",
    "TransportPipeline",
    "active_layers",
    "build_base_transport",
    "build_client",
    "build_credential_source",
    "build_pipeline",
    "build_propagator",
    "build_timeout",
    "get_cancel_token",
    "normalize_scopes",
    "open_client",
    "parse_cookie_header",
]
