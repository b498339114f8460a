"""Typer CLI for the GcsCensus transport pipeline.

Commands:
- ``demo``: write one object and read it back through the pipeline
- ``layers``: show the layer chain a configuration resolves to
- ``config show`` / ``config schema``: inspect the effective configuration

Example:
    $ gcs-census demo --cookie "session=xyz" --latency-ms 50
    $ gcs-census layers --config census.yaml
    $ gcs-census config show --format json
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import typer
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from GcsCensus import __version__
from GcsCensus.config import CensusConfig, export_config_schema, load_config
from GcsCensus.demo import StorageDemo
from GcsCensus.errors import (
    AuthenticationError,
    ConfigurationError,
    PipelineInitError,
    RequestCancelled,
)
from GcsCensus.logging_utils import mask_sensitive_data, setup_logging
from GcsCensus.network import active_layers, open_client

_console = Console()

app = typer.Typer(
    name="gcs-census",
    help="GcsCensus - instrumented HTTP transport pipeline for storage clients",
    no_args_is_help=True,
)
config_app = typer.Typer(
    name="config",
    help="Inspect the effective configuration",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")


def _load(config: Optional[Path], overrides: Optional[Dict[str, Any]] = None) -> CensusConfig:
    try:
        return load_config(config, cli_overrides=overrides)
    except ConfigurationError as e:
        _console.print(f"[red]Configuration error: {escape(str(e))}[/red]")
        raise typer.Exit(1)


def _flatten(data: Dict[str, Any], prefix: str = "") -> List[tuple]:
    rows: List[tuple] = []
    for key, value in data.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            rows.extend(_flatten(value, f"{name}."))
        else:
            rows.append((name, value))
    return rows


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"gcs-census {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """GcsCensus CLI - run the storage demo and inspect pipeline configuration."""


@app.command()
def demo(
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to config file (YAML or JSON)"
    ),
    cookie: Optional[str] = typer.Option(
        None, "--cookie", help="Cookie header value to send with every request"
    ),
    latency_ms: Optional[int] = typer.Option(
        None, "--latency-ms", help="Artificial delay per request in milliseconds"
    ),
    bucket: Optional[str] = typer.Option(None, "--bucket", help="Bucket to write into"),
    object_name: Optional[str] = typer.Option(None, "--object", help="Object name"),
    credentials_file: Optional[str] = typer.Option(
        None, "--credentials-file", help="Service account or authorized-user JSON"
    ),
    exporter: Optional[str] = typer.Option(
        None, "--exporter", help="Span/metric exporter: console, otlp, memory, none"
    ),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level"),
) -> None:
    """Write one object, read it back, and print its contents.

    Telemetry is flushed once the round trip finishes, whether it succeeded
    or not.

    Example:
        $ gcs-census demo --bucket singleton --object firstObject
    """
    setup_logging(level=log_level)
    cfg = _load(
        config,
        {
            "pipeline.cookie": cookie,
            "pipeline.latency_ms": latency_ms,
            "demo.bucket": bucket,
            "demo.object_name": object_name,
            "credentials.credentials_file": credentials_file,
            "tracing.exporter": exporter,
        },
    )

    try:
        with open_client(cfg) as client:
            result = StorageDemo(client, cfg.demo).run()
    except (ConfigurationError, PipelineInitError) as e:
        _console.print(f"[red]Initialization failed: {escape(str(e))}[/red]")
        raise typer.Exit(1)
    except httpx.HTTPStatusError as e:
        _console.print(
            f"[red]Request rejected: {e.response.status_code} {e.request.method} "
            f"{escape(str(e.request.url.copy_with(query=None)))}[/red]"
        )
        raise typer.Exit(2)
    except (AuthenticationError, RequestCancelled, httpx.TransportError) as e:
        _console.print(f"[red]Request failed: {escape(str(e))}[/red]")
        raise typer.Exit(2)

    _console.print(
        f"[green]✓[/green] wrote {result.bytes_written} bytes to "
        f"gs://{result.bucket}/{result.object_name}"
    )
    typer.echo(result.body)


@app.command()
def layers(
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to config file (YAML or JSON)"
    ),
) -> None:
    """Show the layer chain a configuration resolves to, outermost first."""
    cfg = _load(config)
    names = active_layers(cfg)
    _console.print(" → ".join(reversed(names)))


@config_app.command("show")
def config_show(
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to config file (YAML or JSON)"
    ),
    format_output: str = typer.Option(
        "table", "--format", "-f", help="Output format: table, json, or yaml"
    ),
) -> None:
    """Display the effective configuration with cookies and tokens masked.

    Example:
        $ gcs-census config show
        $ gcs-census config show --format json
    """
    cfg = _load(config)
    data = mask_sensitive_data(cfg.model_dump(mode="json"))

    if format_output == "json":
        typer.echo(json.dumps(data, indent=2, default=str))
    elif format_output == "yaml":
        typer.echo(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))
    elif format_output == "table":
        table = Table(title=f"GcsCensus - Effective Configuration ({cfg.config_hash()[:8]})")
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="green")
        for name, value in _flatten(data):
            table.add_row(name, escape(str(value)))
        _console.print(table)
    else:
        typer.echo(f"Unknown format: {format_output}", err=True)
        raise typer.Exit(2)


@config_app.command("schema")
def config_schema() -> None:
    """Print the JSON Schema of the configuration file."""
    typer.echo(json.dumps(export_config_schema(), indent=2, sort_keys=True))


__all__ = ["app", "config_app", "demo", "layers", "config_show", "config_schema", "main"]
