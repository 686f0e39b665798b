"""
Grafana: dashboards and datasources for the deployed Prometheus servers.

Dashboards collected from all modules during phase 1 are provisioned as
files under ``<data_dir>/dashboards``. Datasources point at the servers
exposed by the metrics backend group. When that group has not reached
phase 2 yet (it comes later in the configuration) there are none, and
Grafana is deployed without datasources.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from o11y_deploy.core.errors import ModuleError
from o11y_deploy.labels import LabelSet
from o11y_deploy.model.ansible import Playbook, Role
from o11y_deploy.model.dashboard import dashboard_filename, provision_dashboard
from o11y_deploy.model.services import ReverseProxyEntry, replace_host
from o11y_deploy.modules.base import (
    Module,
    ModuleConfig,
    get_reverse_proxy,
    get_reverse_proxy_address,
    get_targets,
)
from o11y_deploy.pipeline.context import PipelineContext

PROXY_PREFIX = "/grafana"
LOCALHOST = "127.0.0.1"
DASHBOARDS_DIR = "dashboards"


class GrafanaModule(Module):
    cfg: GrafanaConfig

    def playbook(self, ctx: PipelineContext) -> Playbook | None:
        if ctx.data_dir is None:
            raise ModuleError("data directory not set", module=self.name, phase="playbook")
        dashboards_dir = Path(ctx.data_dir) / DASHBOARDS_DIR
        self.write_dashboards(dashboards_dir, ctx)

        servers = ctx.prometheus_servers()
        if servers is None:
            self.logger.warning(
                "prometheus_servers_absent",
                module=self.name,
                metrics_backend_group=ctx.metrics_backend_group,
            )
        datasources = [
            {
                "name": server.name,
                "type": "prometheus",
                "access": "proxy",
                "url": server.url,
                "basic_auth": False,
            }
            for server in servers or []
        ]

        return Playbook(
            name="Grafana",
            vars={
                "grafana_version": self.cfg.grafana_version,
                "grafana_provisioning_synced": True,
                "grafana_security": {
                    "admin_user": "admin",
                    "admin_password": self.cfg.admin_password,
                },
                "grafana_address": self.cfg.grafana_address,
                "grafana_port": self.cfg.grafana_port,
                "grafana_datasources": datasources,
                "grafana_dashboards_dir": str(dashboards_dir),
                "grafana_metrics": {"enabled": True},
                "grafana_auth": {
                    "disable_login_form": True,
                    "oauth_auto_login": False,
                    "disable_signout_menu": False,
                    "signout_redirect_url": "/auth/logout",
                    "proxy": {
                        "enabled": True,
                        "header_name": "X-Token-Subject",
                        "header_property": "username",
                        "auto_sign_up": True,
                    },
                },
                "grafana_server": {
                    "protocol": "http",
                    "enforce_domain": False,
                    "http_addr": self.cfg.grafana_address,
                    "http_port": self.cfg.grafana_port,
                    "enable_gzip": False,
                    "router_logging": False,
                    "serve_from_sub_path": True,
                },
                "grafana_users": {
                    "allow_sign_up": False,
                    "auto_assign_org_role": self.cfg.users_role,
                    "default_theme": "dark",
                },
            },
            become=True,
            roles=[Role(name="grafana")],
        )

    def write_dashboards(self, directory: Path, ctx: PipelineContext) -> list[str]:
        """Write provisioned dashboards and drop files no longer produced."""
        directory.mkdir(parents=True, exist_ok=True)
        expected: dict[str, bytes] = {}

        for payload in ctx.dashboards() or []:
            try:
                dashboard = provision_dashboard(payload)
            except ValueError as exc:
                raise ModuleError(
                    f"cannot provision dashboard {payload.get('title')!r}: {exc}",
                    module=self.name,
                    phase="playbook",
                ) from exc
            content = json.dumps(dashboard, sort_keys=True).encode()
            expected[dashboard_filename(dashboard.get("title", ""))] = content

        for filename, content in (ctx.dashboard_files() or {}).items():
            expected[Path(filename).name] = content

        for filename, content in expected.items():
            path = directory / filename
            if not path.exists() or path.read_bytes() != content:
                path.write_bytes(content)

        for path in directory.iterdir():
            if path.is_file() and path.name not in expected:
                path.unlink()
                self.logger.debug("stale_dashboard_removed", path=str(path))

        return sorted(expected)

    def host_vars(self, target: LabelSet, group: str) -> dict[str, Any]:
        return {"grafana_url": get_reverse_proxy_address(target, self.name, PROXY_PREFIX)}

    def get_targets(self, targets: Sequence[LabelSet], group: str) -> list[LabelSet]:
        return get_targets(targets, self.cfg.grafana_port, group)

    def reverse_proxy(self, targets: Sequence[LabelSet], group: str) -> list[ReverseProxyEntry]:
        entries = get_reverse_proxy(targets, self.cfg.grafana_port, self.name, PROXY_PREFIX)
        if self.cfg.grafana_address == LOCALHOST:
            entries = replace_host(entries, LOCALHOST)
        return entries


class GrafanaConfig(ModuleConfig):
    name = "grafana"
    module_class = GrafanaModule
    consumes_prometheus_servers = True

    admin_password: str = "changeme"
    grafana_version: str = "10.2.1"
    grafana_address: str = LOCALHOST
    grafana_port: int = 3000
    users_role: str = "Viewer"
