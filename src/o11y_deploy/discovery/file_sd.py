"""
File-based discovery.

Reads Prometheus file SD documents (YAML or JSON lists of
``{targets, labels}``) from files matching the configured globs and
re-reads them every ``refresh_interval``.

Reads run on a daemon thread per refresh rather than the loop's default
executor. A read that never returns (a FIFO with no writer, a hung network
mount) is abandoned when discovery stops, and neither ``asyncio.run`` nor
interpreter exit waits for it.
"""

from __future__ import annotations

import asyncio
import glob
import os
import threading
from pathlib import Path

import yaml
from pydantic import Field, field_validator

from o11y_deploy.discovery.base import Batch, Discoverer, DiscoveryConfig
from o11y_deploy.discovery.targetgroup import TargetGroup
from o11y_deploy.durations import parse_duration

FILE_PATH_LABEL = "__meta_filepath"


def read_file(path: str) -> list[TargetGroup]:
    """Parse one file SD document.

    Raises:
        ValueError: if the document is not a list of target groups
        OSError: if the file cannot be read
        yaml.YAMLError: if the document is not valid YAML/JSON
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return []
    if not isinstance(data, list):
        raise ValueError(f"expected a list of target groups, got {type(data).__name__}")
    groups = []
    for i, raw in enumerate(data):
        group = TargetGroup.from_dict(raw, source=f"{path}:{i}")
        group.labels.setdefault(FILE_PATH_LABEL, path)
        groups.append(group)
    return groups


class FileDiscoverer(Discoverer):
    def __init__(self, source: str, config: FileSDConfig) -> None:
        super().__init__(source)
        self.config = config
        self.interval = parse_duration(config.refresh_interval).total_seconds()

    def list_files(self) -> list[str]:
        paths: set[str] = set()
        for pattern in self.config.files:
            paths.update(glob.glob(pattern))
        return sorted(paths)

    def refresh(self) -> list[TargetGroup]:
        groups: list[TargetGroup] = []
        for path in self.list_files():
            try:
                groups.extend(read_file(path))
            except (OSError, ValueError, yaml.YAMLError) as exc:
                self.logger.warning("file_sd_read_failed", path=path, error=str(exc))
        return groups

    async def read(self) -> list[TargetGroup]:
        """Run refresh off the event loop without tying the loop to the thread."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[list[TargetGroup]] = loop.create_future()

        def deliver(groups: list[TargetGroup] | None, exc: BaseException | None) -> None:
            if future.done():
                return
            if exc is not None:
                future.set_exception(exc)
            else:
                future.set_result(groups or [])

        def work() -> None:
            groups: list[TargetGroup] | None = None
            exc: Exception | None = None
            try:
                groups = self.refresh()
            except Exception as e:
                exc = e
            try:
                loop.call_soon_threadsafe(deliver, groups, exc)
            except RuntimeError:
                # loop already closed, nobody is waiting for this read
                self.logger.debug("file_sd_read_abandoned")

        threading.Thread(target=work, name=f"file-sd-{self.source}", daemon=True).start()
        return await future

    async def run(self, queue: asyncio.Queue[Batch]) -> None:
        while True:
            groups = await self.read()
            await self.send(queue, groups)
            await asyncio.sleep(self.interval)


class FileSDConfig(DiscoveryConfig):
    key = "file_sd_configs"

    files: list[str] = Field(min_length=1)
    refresh_interval: str = "5m"

    @field_validator("refresh_interval")
    @classmethod
    def _check_interval(cls, value: str) -> str:
        if parse_duration(value).total_seconds() <= 0:
            raise ValueError("refresh_interval must be positive")
        return value

    def resolve_paths(self, directory: Path) -> FileSDConfig:
        files = [f if os.path.isabs(f) else str(directory / f) for f in self.files]
        return self.model_copy(update={"files": files})

    def new_discoverer(self, source: str) -> FileDiscoverer:
        return FileDiscoverer(source, self)
