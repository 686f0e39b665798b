"""
Pipeline context for one deployment run.

Phase 1 (target projection) writes into the context, phase 2 (playbook
generation) reads from it. Each attribute is owned by a producer/consumer
pair; accessors return None for anything that was never written, so a
consumer whose producer has not run (or is disabled) sees absence rather
than an error.

The context is not synchronized. The deployer that fills and reads it is
single-threaded; concurrent runs must each use their own context.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from o11y_deploy.labels import LabelSet
from o11y_deploy.model.rules import RuleGroup
from o11y_deploy.model.services import AlertmanagerServer, PrometheusServer, ReverseProxyEntry


@dataclass
class PipelineContext:
    """Typed store shared by every module of a single deployment run."""

    data_dir: Path | None = None
    metrics_backend_group: str = "prometheus"

    # phase 1: keyed by target group name
    _rule_groups: dict[str, list[RuleGroup]] = field(default_factory=dict, repr=False)
    _module_targets: dict[str, dict[str, list[LabelSet]]] = field(default_factory=dict, repr=False)
    _alertmanager_servers: dict[str, list[AlertmanagerServer]] = field(
        default_factory=dict, repr=False
    )
    _dashboards: list[dict[str, Any]] | None = field(default=None, repr=False)
    _dashboard_files: dict[str, bytes] | None = field(default=None, repr=False)
    _reverse_proxy_entries: list[ReverseProxyEntry] | None = field(default=None, repr=False)

    # phase 2: written when the metrics backend group is reached
    _prometheus_servers: list[PrometheusServer] | None = field(default=None, repr=False)

    # -- rule groups -------------------------------------------------------

    def add_rule_groups(self, group: str, rule_groups: list[RuleGroup]) -> None:
        """Append rule groups produced for ``group``."""
        self._rule_groups.setdefault(group, []).extend(rule_groups)

    def rule_groups(self) -> dict[str, list[RuleGroup]] | None:
        """Rule groups keyed by target group name, in the order groups were added."""
        return self._rule_groups or None

    # -- targets -----------------------------------------------------------

    def add_module_targets(self, group: str, module: str, targets: list[LabelSet]) -> None:
        self._module_targets.setdefault(group, {}).setdefault(module, []).extend(targets)

    def module_targets(self) -> dict[str, dict[str, list[LabelSet]]] | None:
        """Projected targets keyed by (group name, module name)."""
        return self._module_targets or None

    # -- dashboards --------------------------------------------------------

    def add_dashboards(self, dashboards: list[dict[str, Any]]) -> None:
        if self._dashboards is None:
            self._dashboards = []
        self._dashboards.extend(dashboards)

    def dashboards(self) -> list[dict[str, Any]] | None:
        return self._dashboards

    def add_dashboard_files(self, files: dict[str, bytes]) -> None:
        if self._dashboard_files is None:
            self._dashboard_files = {}
        self._dashboard_files.update(files)

    def dashboard_files(self) -> dict[str, bytes] | None:
        return self._dashboard_files

    # -- exposed services --------------------------------------------------

    def add_reverse_proxy_entries(self, entries: list[ReverseProxyEntry]) -> None:
        if self._reverse_proxy_entries is None:
            self._reverse_proxy_entries = []
        self._reverse_proxy_entries.extend(entries)

    def reverse_proxy_entries(self) -> list[ReverseProxyEntry] | None:
        return self._reverse_proxy_entries

    def add_alertmanager_servers(self, group: str, servers: list[AlertmanagerServer]) -> None:
        self._alertmanager_servers.setdefault(group, []).extend(servers)

    def alertmanager_servers(self) -> list[AlertmanagerServer] | None:
        """All alertmanager servers, across groups, in group order."""
        if not self._alertmanager_servers:
            return None
        return [s for servers in self._alertmanager_servers.values() for s in servers]

    def set_prometheus_servers(self, servers: list[PrometheusServer]) -> None:
        """Record the servers exposed by the metrics backend group."""
        self._prometheus_servers = list(servers)

    def prometheus_servers(self) -> list[PrometheusServer] | None:
        """Servers exposed by the metrics backend group.

        None until that group reaches phase 2. Groups ordered before it in
        the configuration therefore never see them.
        """
        return self._prometheus_servers
