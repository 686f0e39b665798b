"""Statically configured targets."""

from __future__ import annotations

import asyncio

from pydantic import Field

from o11y_deploy.discovery.base import Batch, Discoverer, DiscoveryConfig
from o11y_deploy.discovery.targetgroup import TargetGroup
from o11y_deploy.labels import ADDRESS_LABEL


class StaticDiscoverer(Discoverer):
    def __init__(self, source: str, config: StaticConfig) -> None:
        super().__init__(source)
        self.config = config

    async def run(self, queue: asyncio.Queue[Batch]) -> None:
        group = TargetGroup(
            source=f"{self.source}/0",
            targets=[{ADDRESS_LABEL: target} for target in self.config.targets],
            labels=dict(self.config.labels),
        )
        await self.send(queue, [group])


class StaticConfig(DiscoveryConfig):
    key = "static_configs"

    targets: list[str] = Field(default_factory=list)
    labels: dict[str, str] = Field(default_factory=dict)

    def new_discoverer(self, source: str) -> StaticDiscoverer:
        return StaticDiscoverer(source, self)
