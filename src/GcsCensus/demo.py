"""Write-then-read storage round trip driven through the transport pipeline.

:class:`StorageDemo` talks to the storage JSON API directly over an
``httpx.Client`` whose transport is the assembled pipeline, so both requests
pick up cookies, trace headers, credentials and any injected latency.

Example:
    >>> from GcsCensus.config import CensusConfig
    >>> from GcsCensus.network import open_client
    >>> cfg = CensusConfig()
    >>> with open_client(cfg) as client:
    ...     print(StorageDemo(client, cfg.demo).run())
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from GcsCensus.config.models import DemoConfig

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class DemoResult:
    """Outcome of one write-then-read round trip."""

    bucket: str
    object_name: str
    bytes_written: int
    body: str


class StorageDemo:
    """Upload one object and read it back."""

    def __init__(self, client: httpx.Client, cfg: Optional[DemoConfig] = None) -> None:
        self.client = client
        self.cfg = cfg or DemoConfig()

    @property
    def _base(self) -> str:
        return self.cfg.endpoint.rstrip("/")

    def upload_url(self) -> str:
        return f"{self._base}/upload/storage/v1/b/{quote(self.cfg.bucket, safe='')}/o"

    def media_url(self) -> str:
        bucket = quote(self.cfg.bucket, safe="")
        name = quote(self.cfg.object_name, safe="")
        return f"{self._base}/storage/v1/b/{bucket}/o/{name}"

    def write(self) -> int:
        """Upload the configured body; returns the size the server reports.

        Raises:
            httpx.HTTPStatusError: If the upload is rejected
        """
        payload = self.cfg.body.encode("utf-8")
        response = self.client.post(
            self.upload_url(),
            params={"uploadType": "media", "name": self.cfg.object_name},
            content=payload,
            headers={"Content-Type": "text/plain; charset=utf-8"},
        )
        response.raise_for_status()
        metadata: Dict[str, Any] = response.json() if response.content else {}
        written = int(metadata.get("size", len(payload)))
        if written != len(payload):
            LOGGER.warning(
                "short write",
                extra={"written": written, "expected": len(payload)},
            )
        LOGGER.info(
            "object written",
            extra={"bucket": self.cfg.bucket, "object": self.cfg.object_name, "size": written},
        )
        return written

    def read(self) -> str:
        """Stream the object's media back and decode it as UTF-8.

        Raises:
            httpx.HTTPStatusError: If the download is rejected
        """
        with self.client.stream("GET", self.media_url(), params={"alt": "media"}) as response:
            response.raise_for_status()
            data = b"".join(response.iter_bytes())
        LOGGER.info(
            "object read",
            extra={"bucket": self.cfg.bucket, "object": self.cfg.object_name, "size": len(data)},
        )
        return data.decode("utf-8")

    def run(self) -> DemoResult:
        written = self.write()
        body = self.read()
        return DemoResult(
            bucket=self.cfg.bucket,
            object_name=self.cfg.object_name,
            bytes_written=written,
            body=body,
        )
