"""Linux hosts: node_exporter deployment, host alerts and a node dashboard."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from o11y_deploy.labels import LabelSet
from o11y_deploy.model.ansible import Playbook, Role
from o11y_deploy.model.dashboard import Dashboard, Panel, Target, TemplateVariable
from o11y_deploy.model.rules import AlertingRule, RuleGroup
from o11y_deploy.modules.base import Module, ModuleConfig, get_targets
from o11y_deploy.pipeline.context import PipelineContext


class LinuxModule(Module):
    cfg: LinuxConfig

    def playbook(self, ctx: PipelineContext) -> Playbook | None:
        if not self.cfg.enable_exporter:
            return None
        return Playbook(
            name="Linux",
            vars={
                "node_exporter_version": self.cfg.node_exporter_version,
                "node_exporter_web_listen_address": f"0.0.0.0:{self.cfg.exporter_port}",
            },
            become=True,
            roles=[Role(name="node_exporter")],
        )

    def get_targets(self, targets: Sequence[LabelSet], group: str) -> list[LabelSet]:
        return get_targets(targets, self.cfg.exporter_port, group)

    def get_rules(self, group: str) -> RuleGroup:
        return RuleGroup(
            name=f"{group}-linux",
            rules=[
                AlertingRule(
                    alert="HostOutOfMemory",
                    expr=(
                        "(node_memory_MemAvailable_bytes / node_memory_MemTotal_bytes * 100 < 10)"
                        ' * on(instance) group_left (nodename) node_uname_info{nodename=~".+"}'
                    ),
                    duration="2m",
                    labels={"severity": "warning"},
                    annotations={
                        "summary": "Host out of memory (instance {{ $labels.instance }})",
                        "description": (
                            "Node memory is filling up (< 10% left)\n"
                            "  VALUE = {{ $value }}\n  LABELS = {{ $labels }}"
                        ),
                    },
                ),
                AlertingRule(
                    alert="HostOutOfDiskSpace",
                    expr=(
                        '(node_filesystem_avail_bytes{fstype!~"tmpfs|overlay"} * 100)'
                        ' / node_filesystem_size_bytes{fstype!~"tmpfs|overlay"} < 10'
                    ),
                    duration="2m",
                    labels={"severity": "warning"},
                    annotations={
                        "summary": "Host out of disk space (instance {{ $labels.instance }})",
                        "description": "Disk is almost full (< 10% left)\n  VALUE = {{ $value }}",
                    },
                ),
            ],
        )

    def get_dashboards(self) -> list[dict[str, Any]]:
        if not self.cfg.enable_dashboard:
            return []
        dashboard = Dashboard(
            title="Linux hosts",
            tags=["o11y", "linux"],
            template_variables=[
                TemplateVariable(
                    name="instance",
                    label="instance",
                    query="label_values(node_uname_info,instance)",
                    multi=True,
                    include_all=True,
                )
            ],
            panels=[
                Panel(
                    title="CPU busy",
                    unit="percentunit",
                    targets=[
                        Target(
                            expr=(
                                '1 - avg by (instance) (rate(node_cpu_seconds_total{mode="idle",'
                                'instance=~"$instance"}[5m]))'
                            )
                        )
                    ],
                ),
                Panel(
                    title="Memory available",
                    unit="percentunit",
                    targets=[
                        Target(
                            expr=(
                                'node_memory_MemAvailable_bytes{instance=~"$instance"}'
                                ' / node_memory_MemTotal_bytes{instance=~"$instance"}'
                            )
                        )
                    ],
                ),
            ],
        )
        return [dashboard.to_dict()]


class LinuxConfig(ModuleConfig):
    name = "linux"
    module_class = LinuxModule

    enable_exporter: bool = True
    enable_dashboard: bool = True
    node_exporter_version: str = "1.5.0"
    exporter_port: int = 9100
