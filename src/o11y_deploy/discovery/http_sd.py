"""
HTTP-based discovery.

Polls an endpoint that serves the Prometheus HTTP SD format: a JSON list of
``{"targets": [...], "labels": {...}}`` objects. A failed poll is logged and
retried at the next interval; the previous batch stays in effect.
"""

from __future__ import annotations

import asyncio
from urllib.parse import urlsplit

import httpx
from pydantic import field_validator

from o11y_deploy import __version__
from o11y_deploy.core.errors import DiscoveryError
from o11y_deploy.discovery.base import Batch, Discoverer, DiscoveryConfig
from o11y_deploy.discovery.targetgroup import TargetGroup
from o11y_deploy.durations import parse_duration

URL_LABEL = "__meta_url"


class HTTPDiscoverer(Discoverer):
    def __init__(self, source: str, config: HTTPSDConfig) -> None:
        super().__init__(source)
        self.config = config
        self.interval = parse_duration(config.refresh_interval).total_seconds()

    async def fetch(self, client: httpx.AsyncClient) -> list[TargetGroup]:
        """Fetch and parse one document.

        Raises:
            httpx.HTTPError: on transport errors or non-2xx responses
            ValueError: if the body is not a list of target groups
        """
        response = await client.get(self.config.url)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, list):
            raise ValueError(f"expected a list of target groups, got {type(data).__name__}")
        groups = []
        for i, raw in enumerate(data):
            group = TargetGroup.from_dict(raw, source=f"{self.config.url}:{i}")
            group.labels.setdefault(URL_LABEL, self.config.url)
            groups.append(group)
        return groups

    async def run(self, queue: asyncio.Queue[Batch]) -> None:
        headers = {"Accept": "application/json", "User-Agent": f"o11y-deploy/{__version__}"}
        async with httpx.AsyncClient(headers=headers, timeout=self.config.timeout) as client:
            while True:
                try:
                    groups = await self.fetch(client)
                except (httpx.HTTPError, ValueError) as exc:
                    self.logger.warning("http_sd_poll_failed", url=self.config.url, error=str(exc))
                else:
                    await self.send(queue, groups)
                await asyncio.sleep(self.interval)


class HTTPSDConfig(DiscoveryConfig):
    key = "http_sd_configs"

    url: str
    refresh_interval: str = "60s"
    timeout: float = 30.0

    @field_validator("refresh_interval")
    @classmethod
    def _check_interval(cls, value: str) -> str:
        if parse_duration(value).total_seconds() <= 0:
            raise ValueError("refresh_interval must be positive")
        return value

    def new_discoverer(self, source: str) -> HTTPDiscoverer:
        parts = urlsplit(self.url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise DiscoveryError(f"http_sd: invalid URL {self.url!r}", {"source": source})
        return HTTPDiscoverer(source, self)
