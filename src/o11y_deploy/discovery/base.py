"""
Base classes for discovery backends.

A DiscoveryConfig lives in a target group's ``targets`` section under its
``key`` and creates a Discoverer. Discoverers run as asyncio tasks and push
``(source, [TargetGroup, ...])`` batches onto a queue. A source may push
many times; consumers only keep its latest batch.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path
from typing import ClassVar

import structlog
from pydantic import BaseModel, ConfigDict

from o11y_deploy.discovery.targetgroup import TargetGroup

Batch = tuple[str, list[TargetGroup]]


class Discoverer(ABC):
    """A running discovery backend."""

    def __init__(self, source: str) -> None:
        self.source = source
        self.logger = structlog.get_logger().bind(source=source)

    @abstractmethod
    async def run(self, queue: asyncio.Queue[Batch]) -> None:
        """Push batches onto ``queue`` until done or cancelled."""

    async def send(self, queue: asyncio.Queue[Batch], groups: list[TargetGroup]) -> None:
        await queue.put((self.source, groups))


class DiscoveryConfig(BaseModel, ABC):
    """Base class for discovery backend configuration."""

    model_config = ConfigDict(extra="forbid")

    key: ClassVar[str] = ""

    def resolve_paths(self, directory: Path) -> DiscoveryConfig:
        """Return a copy with relative paths joined to ``directory``."""
        return self

    @abstractmethod
    def new_discoverer(self, source: str) -> Discoverer:
        """Create the backend.

        Raises:
            DiscoveryError: if the backend cannot be started
        """
