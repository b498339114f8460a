"""Tests for configuration models and file < env < CLI loading."""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from GcsCensus.config import (
    DEFAULT_LAYER_ORDER,
    CensusConfig,
    PipelineConfig,
    TracingConfig,
    export_config_schema,
    load_config,
)
from GcsCensus.errors import ConfigurationError


class TestModels:
    """Validation rules on the configuration models."""

    def test_defaults(self):
        cfg = CensusConfig()
        assert cfg.pipeline.cookie == ""
        assert cfg.pipeline.latency_ms == 0
        assert cfg.pipeline.layer_order == DEFAULT_LAYER_ORDER
        assert cfg.tracing.propagation == "tracecontext"
        assert cfg.demo.bucket == "singleton"
        assert cfg.demo.object_name == "firstObject"
        assert cfg.demo.body == "Hello world!"

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValidationError):
            PipelineConfig(cookies="a=1")

    def test_negative_latency_rejected(self):
        with pytest.raises(ValidationError):
            PipelineConfig(latency_ms=-1)

    def test_duplicate_layers_rejected(self):
        with pytest.raises(ValidationError):
            PipelineConfig(layer_order=["cookies", "cookies"])

    def test_unknown_layer_rejected(self):
        with pytest.raises(ValidationError):
            PipelineConfig(layer_order=["retry"])

    def test_sample_ratio_bounds(self):
        with pytest.raises(ValidationError):
            TracingConfig(sample_ratio=1.5)

    def test_buckets_must_increase(self):
        with pytest.raises(ValidationError):
            TracingConfig(latency_buckets_s=[1.0, 0.5])

    def test_config_is_frozen(self):
        cfg = CensusConfig()
        with pytest.raises(ValidationError):
            cfg.pipeline = PipelineConfig(cookie="a=1")

    def test_config_hash_is_deterministic(self):
        assert CensusConfig().config_hash() == CensusConfig().config_hash()
        assert (
            CensusConfig().config_hash()
            != CensusConfig(pipeline=PipelineConfig(cookie="a=1")).config_hash()
        )


class TestLoadConfig:
    """Source precedence: file < environment < CLI."""

    def test_no_sources_gives_defaults(self):
        assert load_config(env={}) == CensusConfig()

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "census.yaml"
        path.write_text("pipeline:\n  cookie: 'a=1'\n  latency_ms: 25\n", encoding="utf-8")

        cfg = load_config(path, env={})

        assert cfg.pipeline.cookie == "a=1"
        assert cfg.pipeline.latency_ms == 25

    def test_json_file(self, tmp_path):
        path = tmp_path / "census.json"
        path.write_text(json.dumps({"demo": {"bucket": "other"}}), encoding="utf-8")

        assert load_config(path, env={}).demo.bucket == "other"

    def test_env_overrides_file(self, tmp_path):
        path = tmp_path / "census.yaml"
        path.write_text("pipeline:\n  latency_ms: 25\n", encoding="utf-8")
        env = {
            "GCSCENSUS_PIPELINE__LATENCY_MS": "50",
            "GCSCENSUS_CREDENTIALS__SCOPES": '["devstorage.read_only"]',
            "GCSCENSUS_TRACING__ENABLED": "false",
            "UNRELATED": "ignored",
        }

        cfg = load_config(path, env=env)

        assert cfg.pipeline.latency_ms == 50
        assert cfg.credentials.scopes == ["devstorage.read_only"]
        assert cfg.tracing.enabled is False

    def test_numeric_looking_env_values_stay_strings(self):
        """Digits in env vars keep their text for string fields and still coerce for ints."""
        env = {
            "GCSCENSUS_DEMO__OBJECT_NAME": "2024",
            "GCSCENSUS_PIPELINE__COOKIE": "1",
            "GCSCENSUS_DEMO__BODY": "true",
            "GCSCENSUS_PIPELINE__LATENCY_MS": "15",
            "GCSCENSUS_TRACING__SAMPLE_RATIO": "0.5",
        }

        cfg = load_config(env=env)

        assert cfg.demo.object_name == "2024"
        assert cfg.pipeline.cookie == "1"
        assert cfg.demo.body == "true"
        assert cfg.pipeline.latency_ms == 15
        assert cfg.tracing.sample_ratio == 0.5

    def test_cli_overrides_env(self):
        env = {"GCSCENSUS_PIPELINE__COOKIE": "from=env"}

        cfg = load_config(
            env=env,
            cli_overrides={"pipeline.cookie": "from=cli", "demo.bucket": None},
        )

        assert cfg.pipeline.cookie == "from=cli"
        assert cfg.demo.bucket == "singleton"

    def test_nested_cli_overrides_merge(self, tmp_path):
        path = tmp_path / "census.yaml"
        path.write_text("demo:\n  bucket: b1\n  object_name: o1\n", encoding="utf-8")

        cfg = load_config(path, env={}, cli_overrides={"demo": {"bucket": "b2"}})

        assert cfg.demo.bucket == "b2"
        assert cfg.demo.object_name == "o1"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "missing.yaml", env={})

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "census.toml"
        path.write_text("", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Unsupported"):
            load_config(path, env={})

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "census.yaml"
        path.write_text("pipeline: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(path, env={})

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "census.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(path, env={})

    def test_validation_error_wrapped(self):
        with pytest.raises(ConfigurationError, match="validation failed"):
            load_config(env={"GCSCENSUS_PIPELINE__LATENCY_MS": "-5"})


def test_schema_lists_sections():
    schema = export_config_schema()
    assert {"http", "credentials", "tracing", "pipeline", "demo"} <= set(schema["properties"])
