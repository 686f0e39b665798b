"""Prometheus server: scrapes every projected target and evaluates every rule group."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from o11y_deploy.labels import LabelSet, join_host_port
from o11y_deploy.model.ansible import Playbook, Role
from o11y_deploy.model.rules import AlertingRule, RuleGroup
from o11y_deploy.model.services import PrometheusServer, ReverseProxyEntry, replace_host
from o11y_deploy.modules.base import (
    Module,
    ModuleConfig,
    get_reverse_proxy,
    get_reverse_proxy_address,
    get_targets,
)
from o11y_deploy.pipeline.context import PipelineContext

PROXY_PREFIX = "/prometheus"
LOCALHOST = "127.0.0.1"


def labels_to_static_configs(
    targets: dict[str, dict[str, list[LabelSet]]] | None,
) -> dict[str, list[dict[str, Any]]]:
    """Group projected targets into static_configs, one list per module."""
    jobs: dict[str, list[dict[str, Any]]] = {}
    for _group, by_module in (targets or {}).items():
        for module, label_sets in by_module.items():
            for label_set in label_sets:
                jobs.setdefault(module, []).append(
                    {"targets": [label_set.address], "labels": label_set.public()}
                )
    return jobs


class PrometheusModule(Module):
    cfg: PrometheusConfig

    def playbook(self, ctx: PipelineContext) -> Playbook | None:
        scrape_configs = [
            {
                "job_name": job,
                "scrape_interval": self.cfg.scrape_interval,
                "scrape_timeout": self.cfg.scrape_timeout,
                "metrics_path": "/metrics",
                "scheme": "http",
                "static_configs": static_configs,
            }
            for job, static_configs in sorted(labels_to_static_configs(ctx.module_targets()).items())
        ]

        rule_groups = ctx.rule_groups() or {}
        alertmanagers = ctx.alertmanager_servers() or []

        return Playbook(
            name="Prometheus",
            vars={
                "prometheus_version": self.cfg.prometheus_version,
                "prometheus_web_listen_address": join_host_port(
                    self.cfg.listen_address, self.cfg.listen_port
                ),
                "prometheus_web_external_url": "{{o11y_prometheus_external_address}}",
                "prometheus_scrape_configs": scrape_configs,
                "prometheus_alert_rules_groups": [
                    group.to_dict()
                    for groups in rule_groups.values()
                    for group in groups
                    if not group.is_empty()
                ],
                "prometheus_alertmanager_config": [
                    {"static_configs": [{"targets": [am.url]}]} for am in alertmanagers
                ],
            },
            become=True,
            roles=[Role(name="prometheus")],
        )

    def host_vars(self, target: LabelSet, group: str) -> dict[str, Any]:
        return {
            "o11y_prometheus_external_address": get_reverse_proxy_address(
                target, self.name, PROXY_PREFIX
            )
        }

    def get_targets(self, targets: Sequence[LabelSet], group: str) -> list[LabelSet]:
        return get_targets(targets, self.cfg.listen_port, group)

    def reverse_proxy(self, targets: Sequence[LabelSet], group: str) -> list[ReverseProxyEntry]:
        entries = get_reverse_proxy(targets, self.cfg.listen_port, self.name, PROXY_PREFIX)
        if self.cfg.listen_address == LOCALHOST:
            entries = replace_host(entries, LOCALHOST)
        return entries

    def get_prometheus_servers(
        self, targets: Sequence[LabelSet], group: str
    ) -> list[PrometheusServer]:
        entries = get_reverse_proxy(targets, self.cfg.listen_port, self.name, PROXY_PREFIX)
        return [
            PrometheusServer(name=f"{entry.name} on {entry.host}", url=entry.url + entry.prefix)
            for entry in entries
        ]

    def get_rules(self, group: str) -> RuleGroup:
        return RuleGroup(
            name=f"{group}-prometheus",
            rules=[
                AlertingRule(
                    alert="PrometheusBadConfig",
                    expr=(
                        'max_over_time(prometheus_config_last_reload_successful{job="prometheus"}[5m])'
                        " == 0"
                    ),
                    duration="10m",
                    labels={"severity": "critical"},
                    annotations={
                        "description": (
                            "Prometheus {{$labels.instance}} has failed to reload its configuration."
                        ),
                        "summary": "Failed Prometheus configuration reload.",
                    },
                ),
                AlertingRule(
                    alert="PrometheusNotificationQueueRunningFull",
                    expr=(
                        "(predict_linear(prometheus_notifications_queue_length"
                        '{job="prometheus"}[5m], 60 * 30) > min_over_time('
                        'prometheus_notifications_queue_capacity{job="prometheus"}[5m]))'
                    ),
                    duration="15m",
                    labels={"severity": "warning"},
                    annotations={
                        "description": (
                            "Alert notification queue of Prometheus {{$labels.instance}}"
                            " is running full."
                        ),
                        "summary": (
                            "Prometheus alert notification queue predicted to run full"
                            " in less than 30m."
                        ),
                    },
                ),
            ],
        )


class PrometheusConfig(ModuleConfig):
    name = "prometheus"
    module_class = PrometheusModule

    prometheus_version: str = "2.43.0"
    listen_address: str = LOCALHOST
    listen_port: int = 9090
    scrape_interval: str = "15s"
    scrape_timeout: str = "10s"
