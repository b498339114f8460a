"""
Pytest Configuration

Shared fixtures for the transport pipeline suite: fake inner transports built
on ``httpx.MockTransport``, isolated OpenTelemetry providers backed by the
in-memory exporter and reader, and logging cleanup between tests.

No fixture installs global OpenTelemetry providers; every test gets its own.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Iterator, List

import httpx
import pytest

from GcsCensus.config import CensusConfig, CredentialsConfig, TracingConfig
from GcsCensus.observability import TelemetryRuntime


class RecordingTransport(httpx.MockTransport):
    """Mock transport that remembers every request it receives and whether it was closed."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: List[httpx.Request] = []
        self.closed = False
        self._lock = threading.Lock()

        def _record(request: httpx.Request) -> httpx.Response:
            with self._lock:
                self.requests.append(request)
            return handler(request)

        super().__init__(_record)

    def close(self) -> None:
        self.closed = True


def echo_headers(request: httpx.Request) -> httpx.Response:
    """Respond with the received headers as a JSON object (lower-cased names)."""
    return httpx.Response(200, json={"headers": dict(request.headers.items())})


@pytest.fixture
def echo_transport() -> RecordingTransport:
    return RecordingTransport(echo_headers)


@pytest.fixture
def ok_transport() -> RecordingTransport:
    return RecordingTransport(lambda request: httpx.Response(200, text="ok"))


@pytest.fixture
def census_config() -> CensusConfig:
    """Default config with a static token and in-memory telemetry."""
    return CensusConfig(
        credentials=CredentialsConfig(static_token="test-token"),
        tracing=TracingConfig(exporter="memory"),
    )


@pytest.fixture
def telemetry() -> Iterator[TelemetryRuntime]:
    """Isolated providers exporting to memory; flushed after the test."""
    runtime = TelemetryRuntime(TracingConfig(exporter="memory")).start(install_global=False)
    try:
        yield runtime
    finally:
        runtime.shutdown()


@pytest.fixture
def metric_points() -> Callable[[TelemetryRuntime], Dict[str, list]]:
    """Return a collector mapping metric name to its data points."""

    def _collect(runtime: TelemetryRuntime) -> Dict[str, list]:
        points: Dict[str, list] = {}
        data = runtime.metric_reader.get_metrics_data()
        if data is None:
            return points
        for resource_metrics in data.resource_metrics:
            for scope_metrics in resource_metrics.scope_metrics:
                for metric in scope_metrics.metrics:
                    points.setdefault(metric.name, []).extend(metric.data.data_points)
        return points

    return _collect


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    """Drop handlers installed by ``setup_logging`` so streams are not reused."""
    yield
    logger = logging.getLogger("GcsCensus")
    for handler in list(logger.handlers):
        if getattr(handler, "_gcscensus_managed", False):
            logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture
def make_transport() -> Callable[[Callable[[httpx.Request], httpx.Response]], RecordingTransport]:
    """Factory for recording transports with a custom handler."""
    return RecordingTransport
