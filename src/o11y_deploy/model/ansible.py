"""
Ansible inventory and playbook models.

These are the shapes handed to the provisioning runner: one Inventory per
target group and one Playbook artifact per enabled module.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

ALL_GROUP = "all"


@dataclass
class Host:
    variables: dict[str, Any] = field(default_factory=dict)


@dataclass
class Group:
    hosts: dict[str, Host] = field(default_factory=dict)
    variables: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.hosts:
            data["hosts"] = {name: host.variables or None for name, host in self.hosts.items()}
        if self.variables:
            data["vars"] = dict(self.variables)
        return data


@dataclass
class Inventory:
    """A named collection of host groups."""

    groups: dict[str, Group] = field(default_factory=dict)

    def group(self, name: str = ALL_GROUP) -> Group:
        """Return the named group, creating it if needed."""
        return self.groups.setdefault(name, Group())

    @property
    def hosts(self) -> list[str]:
        return list(self.group(ALL_GROUP).hosts)

    def to_dict(self) -> dict[str, Any]:
        return {name: group.to_dict() for name, group in self.groups.items()}


@dataclass
class Task:
    name: str
    config: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, **self.config}


@dataclass
class Role:
    name: str
    tasks: list[Task] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name}
        if self.tasks:
            data["tasks"] = [t.to_dict() for t in self.tasks]
        return data


@dataclass
class Playbook:
    """A single play. Opaque to the deployer, rendered verbatim for the runner."""

    name: str
    hosts: str = ALL_GROUP
    vars: dict[str, Any] = field(default_factory=dict)
    roles: list[Role] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)
    become: bool = False
    remote_user: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name}
        if self.hosts:
            data["hosts"] = self.hosts
        if self.remote_user:
            data["remote_user"] = self.remote_user
        if self.vars:
            data["vars"] = _plain(self.vars)
        data["tasks"] = [t.to_dict() for t in self.tasks]
        if self.roles:
            data["roles"] = [r.to_dict() for r in self.roles]
        data["become"] = self.become
        return data


def _plain(value: Any) -> Any:
    """Turn nested model objects into plain YAML-safe structures."""
    if hasattr(value, "to_dict"):
        return _plain(value.to_dict())
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value
