"""
Pydantic v2 Configuration Models for GcsCensus

Provides strict, typed configuration for every pipeline concern:
- HTTP base transport settings (timeouts, TLS, pooling)
- Credential source settings (credentials file, scopes)
- Tracing and metrics export settings (propagation, sampler, exporter)
- Pipeline layer settings (cookie, artificial latency, layer order)
- Storage demo settings (bucket, object, body)
- Top-level CensusConfig as single source of truth

All models use extra="forbid" for strict validation. Environment variables
and CLI overrides follow: file < env < CLI precedence.
"""

from __future__ import annotations

import hashlib
import json
from typing import ClassVar, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

LayerName = Literal["latency", "credentials", "tracing", "cookies"]

DEFAULT_LAYER_ORDER: List[str] = ["latency", "credentials", "tracing", "cookies"]
DEFAULT_SCOPES: List[str] = ["https://www.googleapis.com/auth/devstorage.full_control"]


# ============================================================================
# Layer Models
# ============================================================================


class HttpConfig(BaseModel):
    """Configuration for the base network transport."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    user_agent: str = Field(default="GcsCensus/0.3", description="User-Agent string")
    timeout_connect_s: float = Field(default=10.0, description="Connection timeout in seconds")
    timeout_read_s: float = Field(default=60.0, description="Read timeout in seconds")
    timeout_write_s: float = Field(default=60.0, description="Write timeout in seconds")
    timeout_pool_s: float = Field(default=5.0, description="Pool acquisition timeout in seconds")
    verify_tls: bool = Field(default=True, description="Verify TLS certificates")
    http2: bool = Field(default=False, description="Enable HTTP/2 (requires h2)")
    max_connections: int = Field(default=100, description="Maximum pooled connections")
    max_keepalive_connections: int = Field(default=20, description="Maximum idle connections")
    keepalive_expiry_s: float = Field(default=5.0, description="Idle connection expiry")

    @field_validator("timeout_connect_s", "timeout_read_s", "timeout_write_s", "timeout_pool_s")
    @classmethod
    def validate_timeouts(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be > 0")
        return v

    @field_validator("max_connections", "max_keepalive_connections")
    @classmethod
    def validate_pool(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Pool limits must be >= 1")
        return v


class CredentialsConfig(BaseModel):
    """Configuration for bearer-token credentials."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    enabled: bool = Field(default=True, description="Attach bearer credentials to requests")
    credentials_file: Optional[str] = Field(
        default=None,
        description="Service account or authorized-user JSON file (None = ambient discovery)",
    )
    scopes: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SCOPES), description="OAuth scopes to request"
    )
    static_token: Optional[str] = Field(
        default=None, description="Fixed bearer token (emulators and tests)"
    )
    quota_project_id: Optional[str] = Field(
        default=None, description="Project billed for quota (x-goog-user-project)"
    )

    @field_validator("scopes")
    @classmethod
    def validate_scopes(cls, v: List[str]) -> List[str]:
        cleaned = [scope.strip() for scope in v]
        if any(not scope for scope in cleaned):
            raise ValueError("scopes must not contain empty entries")
        return cleaned


class TracingConfig(BaseModel):
    """Configuration for trace propagation, client metrics, and export."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    enabled: bool = Field(default=True, description="Enable the trace propagation layer")
    propagation: Literal["tracecontext", "b3", "b3multi", "cloudtrace"] = Field(
        default="tracecontext", description="Propagation header format"
    )
    sampler: Literal["always", "never", "ratio"] = Field(
        default="always", description="Trace sampling policy"
    )
    sample_ratio: float = Field(default=1.0, description="Ratio used when sampler=ratio")
    exporter: Literal["console", "otlp", "memory", "none"] = Field(
        default="console", description="Span and metric exporter"
    )
    otlp_endpoint: str = Field(
        default="http://localhost:4318", description="OTLP/HTTP collector base URL"
    )
    metric_export_interval_s: float = Field(
        default=60.0, description="Periodic metric export interval"
    )
    project_id: Optional[str] = Field(
        default=None, description="Project the metrics and traces are attributed to"
    )
    service_name: str = Field(default="gcs-census", description="service.name resource attribute")
    latency_buckets_s: List[float] = Field(
        default_factory=lambda: [
            0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0,
        ],
        description="Histogram bucket boundaries for round-trip latency",
    )

    @field_validator("sample_ratio")
    @classmethod
    def validate_ratio(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("sample_ratio must be within [0, 1]")
        return v

    @field_validator("metric_export_interval_s")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("metric_export_interval_s must be > 0")
        return v

    @field_validator("latency_buckets_s")
    @classmethod
    def validate_buckets(cls, v: List[float]) -> List[float]:
        if list(v) != sorted(set(v)):
            raise ValueError("latency_buckets_s must be strictly increasing")
        return v


class PipelineConfig(BaseModel):
    """Configuration for the optional pipeline layers and their order."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    cookie: str = Field(default="", description="Raw Cookie header value to inject ('' = off)")
    latency_ms: int = Field(default=0, description="Artificial delay per request (0 = off)")
    layer_order: List[LayerName] = Field(
        default_factory=lambda: list(DEFAULT_LAYER_ORDER),
        description="Layers from innermost to outermost",
    )

    @field_validator("latency_ms")
    @classmethod
    def validate_latency(cls, v: int) -> int:
        if v < 0:
            raise ValueError("latency_ms must be >= 0")
        return v

    @field_validator("layer_order")
    @classmethod
    def validate_layer_order(cls, v: List[str]) -> List[str]:
        if len(set(v)) != len(v):
            raise ValueError("layer_order must not repeat layers")
        return v


class DemoConfig(BaseModel):
    """Configuration for the write-then-read storage demo."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    endpoint: str = Field(
        default="https://storage.googleapis.com", description="Storage JSON API endpoint"
    )
    bucket: str = Field(default="singleton", description="Bucket to write into")
    object_name: str = Field(default="firstObject", description="Object name")
    body: str = Field(default="Hello world!", description="Object payload")


# ============================================================================
# Top-Level Configuration
# ============================================================================


class CensusConfig(BaseModel):
    """
    Single source of truth for GcsCensus configuration.

    Loaded from file (YAML/JSON), overlaid with environment variables,
    and finally overridden by CLI arguments. Precedence: file < env < CLI.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    http: HttpConfig = Field(default_factory=HttpConfig, description="Base transport")
    credentials: CredentialsConfig = Field(
        default_factory=CredentialsConfig, description="Credential source"
    )
    tracing: TracingConfig = Field(default_factory=TracingConfig, description="Tracing and metrics")
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig, description="Pipeline layers")
    demo: DemoConfig = Field(default_factory=DemoConfig, description="Storage demo")

    def config_hash(self) -> str:
        """
        Compute deterministic SHA256 hash of config for reproducibility.

        Returns:
            Hex-encoded SHA256 hash of normalized config JSON.
        """
        normalized = json.dumps(self.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(normalized.encode()).hexdigest()
