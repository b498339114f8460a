"""Typed configuration for the transport pipeline (file < env < CLI)."""

from GcsCensus.config.loader import export_config_schema, load_config
from GcsCensus.config.models import (
    DEFAULT_LAYER_ORDER,
    DEFAULT_SCOPES,
    CensusConfig,
    CredentialsConfig,
    DemoConfig,
    HttpConfig,
    PipelineConfig,
    TracingConfig,
)

__all__ = [
    "CensusConfig",
    "CredentialsConfig",
    "DemoConfig",
    "HttpConfig",
    "PipelineConfig",
    "TracingConfig",
    "DEFAULT_LAYER_ORDER",
    "DEFAULT_SCOPES",
    "load_config",
    "export_config_schema",
]
