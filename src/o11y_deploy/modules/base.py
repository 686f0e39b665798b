"""
Module contract.

A service module is described by a ModuleConfig (the part that lives in the
configuration document) and produces a Module at runtime. The deployer
only talks to modules through the methods below; optional capabilities
(reverse proxying, exposing Prometheus or Alertmanager servers) are
expressed as protocols and detected at runtime.
"""

from __future__ import annotations

import hashlib
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, ClassVar, Protocol, runtime_checkable

import structlog
from pydantic import BaseModel, ConfigDict

from o11y_deploy.core.errors import ModuleError
from o11y_deploy.labels import (
    ADDRESS_LABEL,
    GROUP_NAME_LABEL,
    LabelSet,
    join_host_port,
    split_host_port,
)
from o11y_deploy.model.ansible import Playbook
from o11y_deploy.model.rules import RuleGroup
from o11y_deploy.model.services import AlertmanagerServer, PrometheusServer, ReverseProxyEntry
from o11y_deploy.pipeline.context import PipelineContext

PORTAL_ADDRESS_VAR = "o11y_portal_address"


@dataclass
class ModuleOptions:
    """Options handed to ModuleConfig.new_module."""

    logger: Any = field(default_factory=structlog.get_logger)


class Module:
    """Runtime instance of a service module."""

    def __init__(self, cfg: ModuleConfig, options: ModuleOptions | None = None) -> None:
        self.cfg = cfg
        self.options = options or ModuleOptions()
        self.logger = self.options.logger

    @property
    def name(self) -> str:
        return self.cfg.name

    def get_targets(self, targets: Sequence[LabelSet], group: str) -> list[LabelSet]:
        """Project discovered targets into this module's scrape targets."""
        return []

    def playbook(self, ctx: PipelineContext) -> Playbook | None:
        """Build this module's artifact. None opts out."""
        return None

    def host_vars(self, target: LabelSet, group: str) -> dict[str, Any]:
        return {}

    def get_rules(self, group: str) -> RuleGroup:
        return RuleGroup(name=f"{group}-{self.name}")

    def get_dashboards(self) -> list[dict[str, Any]]:
        return []

    def get_dashboard_files(self) -> dict[str, bytes]:
        return {}


@runtime_checkable
class ReverseProxiedModule(Protocol):
    def reverse_proxy(self, targets: Sequence[LabelSet], group: str) -> list[ReverseProxyEntry]:
        ...


@runtime_checkable
class PrometheusServersModule(Protocol):
    def get_prometheus_servers(
        self, targets: Sequence[LabelSet], group: str
    ) -> list[PrometheusServer]:
        ...


@runtime_checkable
class AlertmanagerServersModule(Protocol):
    def get_alertmanager_servers(
        self, targets: Sequence[LabelSet], group: str
    ) -> list[AlertmanagerServer]:
        ...


class ModuleConfig(BaseModel):
    """Base class for module configuration.

    Subclasses set ``name`` and declare their fields with defaults. The
    structural key in the configuration document is ``<name>_module``.
    """

    model_config = ConfigDict(extra="forbid")

    name: ClassVar[str] = ""
    module_class: ClassVar[type] = Module
    # Modules that read the metrics backend's servers in phase 2.
    consumes_prometheus_servers: ClassVar[bool] = False

    enabled: bool = False

    @classmethod
    def default(cls) -> ModuleConfig:
        """The configuration used when the document omits this module."""
        return cls.model_validate({})

    def is_enabled(self) -> bool:
        return self.enabled

    def new_module(self, options: ModuleOptions | None = None) -> Module:
        return self.module_class(self, options)


def hash_string(value: str) -> str:
    """Stable 20-character content hash used in proxy paths."""
    return hashlib.sha256(value.encode()).hexdigest()[:20]


def target_host(target: LabelSet) -> str:
    address = target.address
    if not address:
        raise ModuleError(f"{ADDRESS_LABEL} label not found in label set {target!r}")
    host, _ = split_host_port(address)
    return host


def get_targets(targets: Sequence[LabelSet], port: str | int, group: str) -> list[LabelSet]:
    """Rewrite each target's port to ``port`` and tag it with ``group``."""
    projected = []
    for target in targets:
        host = target_host(target)
        projected.append(
            target.merge({ADDRESS_LABEL: join_host_port(host, port), GROUP_NAME_LABEL: group})
        )
    return projected


def proxy_prefix(name: str, host: str, prefix: str) -> str:
    return f"{prefix}/{hash_string(f'{name} on {host}')}"


def get_reverse_proxy(
    targets: Sequence[LabelSet], port: str | int, name: str, prefix: str
) -> list[ReverseProxyEntry]:
    """One reverse proxy entry per target."""
    entries = []
    for target in targets:
        host = target_host(target)
        entries.append(
            ReverseProxyEntry(
                name=name,
                url=f"http://{join_host_port(host, port)}",
                prefix=proxy_prefix(name, host, prefix),
                host=host,
            )
        )
    return entries


def get_reverse_proxy_address(target: LabelSet, name: str, prefix: str) -> str:
    """External address of a proxied instance, relative to the portal address."""
    host = target_host(target)
    return "{{%s|default(\"\")}}%s" % (PORTAL_ADDRESS_VAR, proxy_prefix(name, host, prefix))
