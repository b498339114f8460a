"""Tests for the write-then-read storage demo over a fake storage API."""

from __future__ import annotations

import httpx
import pytest

from GcsCensus.config import DemoConfig
from GcsCensus.demo import StorageDemo
from GcsCensus.network import build_client, build_pipeline


class FakeStorage:
    """Minimal in-memory storage JSON API: media uploads and alt=media reads."""

    def __init__(self) -> None:
        self.objects = {}
        self.seen = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.seen.append(request)
        path = request.url.path
        if request.method == "POST" and path.startswith("/upload/storage/v1/b/"):
            bucket = path.split("/")[5]
            name = request.url.params["name"]
            assert request.url.params["uploadType"] == "media"
            body = request.read()
            self.objects[(bucket, name)] = body
            return httpx.Response(
                200, json={"bucket": bucket, "name": name, "size": str(len(body))}
            )
        if request.method == "GET" and path.startswith("/storage/v1/b/"):
            parts = path.split("/")
            key = (parts[4], parts[6])
            if request.url.params.get("alt") != "media" or key not in self.objects:
                return httpx.Response(404, json={"error": {"code": 404}})
            return httpx.Response(200, content=self.objects[key])
        return httpx.Response(400)


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def storage_client(census_config, storage, make_transport, telemetry):
    pipeline = build_pipeline(
        census_config,
        base=make_transport(storage),
        tracer_provider=telemetry.tracer_provider,
        meter_provider=telemetry.meter_provider,
    )
    with build_client(census_config, pipeline) as client:
        yield client


class TestStorageDemo:
    def test_urls(self, storage_client):
        demo = StorageDemo(
            storage_client,
            DemoConfig(endpoint="https://storage.example/", bucket="b", object_name="dir/obj"),
        )
        assert demo.upload_url() == "https://storage.example/upload/storage/v1/b/b/o"
        assert demo.media_url() == "https://storage.example/storage/v1/b/b/o/dir%2Fobj"

    def test_write_then_read(self, storage_client, storage):
        result = StorageDemo(storage_client, DemoConfig()).run()

        assert result.body == "Hello world!"
        assert result.bytes_written == len(b"Hello world!")
        assert storage.objects[("singleton", "firstObject")] == b"Hello world!"
        assert all(
            request.headers["authorization"] == "Bearer test-token" for request in storage.seen
        )

    def test_missing_object_raises(self, storage_client):
        demo = StorageDemo(storage_client, DemoConfig(object_name="absent"))
        with pytest.raises(httpx.HTTPStatusError):
            demo.read()

    def test_short_write_is_logged(self, census_config, make_transport, telemetry, caplog):
        def _short(request):
            return httpx.Response(200, json={"size": "3"})

        pipeline = build_pipeline(
            census_config,
            base=make_transport(_short),
            tracer_provider=telemetry.tracer_provider,
            meter_provider=telemetry.meter_provider,
        )
        with build_client(census_config, pipeline) as client:
            with caplog.at_level("WARNING", logger="GcsCensus.demo"):
                written = StorageDemo(client).write()

        assert written == 3
        assert "short write" in caplog.text
