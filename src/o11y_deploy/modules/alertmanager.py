"""Alertmanager: email notification routing for every Prometheus alert."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from pydantic import Field

from o11y_deploy.labels import LabelSet, join_host_port
from o11y_deploy.model.ansible import Playbook, Role
from o11y_deploy.model.rules import AlertingRule, RuleGroup
from o11y_deploy.model.services import AlertmanagerServer, ReverseProxyEntry, replace_host
from o11y_deploy.modules.base import (
    Module,
    ModuleConfig,
    get_reverse_proxy,
    get_reverse_proxy_address,
    get_targets,
)
from o11y_deploy.pipeline.context import PipelineContext

PROXY_PREFIX = "/alertmanager"
LOCALHOST = "127.0.0.1"


def map_emails_to_config(emails: Sequence[str]) -> list[dict[str, str]]:
    return [{"to": email} for email in emails]


class AlertmanagerModule(Module):
    cfg: AlertmanagerConfig

    def playbook(self, ctx: PipelineContext) -> Playbook | None:
        return Playbook(
            name="Alertmanager",
            vars={
                "alertmanager_receivers": [
                    {"name": "email", "email_configs": map_emails_to_config(self.cfg.receivers)}
                ],
                "alertmanager_route": {
                    "group_by": ["alertname"],
                    "group_wait": "30s",
                    "group_interval": "5m",
                    "repeat_interval": "3h",
                    "receiver": "email",
                },
                "alertmanager_smtp": {
                    "from": self.cfg.smtp_from,
                    "smarthost": self.cfg.smtp_smarthost,
                },
                "alertmanager_web_external_url": "{{o11y_alertmanager_external_address}}",
                "alertmanager_web_listen_address": join_host_port(
                    self.cfg.listen_address, self.cfg.listen_port
                ),
            },
            become=True,
            roles=[Role(name="alertmanager")],
        )

    def host_vars(self, target: LabelSet, group: str) -> dict[str, Any]:
        return {
            "o11y_alertmanager_external_address": get_reverse_proxy_address(
                target, self.name, PROXY_PREFIX
            )
        }

    def get_targets(self, targets: Sequence[LabelSet], group: str) -> list[LabelSet]:
        return get_targets(targets, self.cfg.listen_port, group)

    def reverse_proxy(self, targets: Sequence[LabelSet], group: str) -> list[ReverseProxyEntry]:
        entries = get_reverse_proxy(targets, self.cfg.listen_port, self.name, PROXY_PREFIX)
        # Only reachable through the portal on the same host.
        if self.cfg.listen_address == LOCALHOST:
            entries = replace_host(entries, LOCALHOST)
        return entries

    def get_alertmanager_servers(
        self, targets: Sequence[LabelSet], group: str
    ) -> list[AlertmanagerServer]:
        entries = get_reverse_proxy(targets, self.cfg.listen_port, self.name, PROXY_PREFIX)
        return [AlertmanagerServer(name=entry.name, url=entry.url + entry.prefix) for entry in entries]

    def get_rules(self, group: str) -> RuleGroup:
        return RuleGroup(
            name=f"{group}-alertmanager",
            rules=[
                AlertingRule(
                    alert="AlertmanagerFailedReload",
                    expr=(
                        "max_over_time(alertmanager_config_last_reload_successful"
                        '{job="alertmanager"}[5m]) == 0'
                    ),
                    duration="10m",
                    labels={"severity": "critical"},
                    annotations={
                        "summary": "Alertmanager configuration reload has failed.",
                        "description": (
                            "Configuration has failed to load for {{ $labels.instance }}."
                        ),
                    },
                ),
                AlertingRule(
                    alert="AlertmanagerFailedToSendAlerts",
                    expr=(
                        "rate(alertmanager_notifications_failed_total[5m])"
                        " / rate(alertmanager_notifications_total[5m]) > 0.01"
                    ),
                    duration="5m",
                    labels={"severity": "warning"},
                    annotations={
                        "summary": "An Alertmanager instance failed to send notifications.",
                        "description": (
                            "Alertmanager {{ $labels.instance }} failed to send"
                            " {{ $value | humanizePercentage }} of notifications"
                            " to {{ $labels.integration }}."
                        ),
                    },
                ),
            ],
        )


class AlertmanagerConfig(ModuleConfig):
    name = "alertmanager"
    module_class = AlertmanagerModule

    listen_address: str = LOCALHOST
    listen_port: int = 9093
    receivers: list[str] = Field(default_factory=lambda: ["default@change.me"])
    smtp_from: str = "default@change.me"
    smtp_smarthost: str = "smtp.gmail.com:587"
