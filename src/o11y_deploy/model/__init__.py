"""Artifact models handed to the provisioning runner."""

from o11y_deploy.model.ansible import Group, Host, Inventory, Playbook, Role, Task
from o11y_deploy.model.rules import AlertingRule, RuleGroup
from o11y_deploy.model.services import (
    AlertmanagerServer,
    PrometheusServer,
    ReverseProxyEntry,
    replace_host,
)

__all__ = [
    "AlertingRule",
    "AlertmanagerServer",
    "Group",
    "Host",
    "Inventory",
    "Playbook",
    "PrometheusServer",
    "ReverseProxyEntry",
    "Role",
    "RuleGroup",
    "Task",
    "replace_host",
]
