"""Endpoints that modules expose to one another through the pipeline context."""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Any
from urllib.parse import urlsplit

from o11y_deploy.labels import join_host_port


@dataclass(frozen=True)
class ReverseProxyEntry:
    """
    A route published by the portal's reverse proxy.

    ``prefix`` embeds a hash of the service name and host so the public
    path of a given instance does not change between runs.
    """

    name: str
    url: str
    prefix: str
    host: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PrometheusServer:
    name: str
    url: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AlertmanagerServer:
    name: str
    url: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def replace_host(entries: list[ReverseProxyEntry], host: str) -> list[ReverseProxyEntry]:
    """Point every entry at ``host``, keeping scheme and port."""
    replaced = []
    for entry in entries:
        parts = urlsplit(entry.url)
        if not parts.scheme:
            raise ValueError(f"could not parse url: {entry.url!r}")
        netloc = join_host_port(host, parts.port) if parts.port else host
        replaced.append(replace(entry, host=host, url=f"{parts.scheme}://{netloc}"))
    return replaced
