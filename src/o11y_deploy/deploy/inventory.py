"""Inventory builder: a group's final label sets to an Ansible inventory."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from o11y_deploy.labels import LabelSet
from o11y_deploy.model.ansible import ALL_GROUP, Host, Inventory

HostVarsFunc = Callable[[LabelSet], dict[str, Any]]


def generate_inventory(
    label_sets: Sequence[LabelSet], host_vars: HostVarsFunc | None = None
) -> Inventory:
    """Build an inventory with one host per distinct address.

    Host variables are the label set's public labels, updated with whatever
    ``host_vars`` returns for it. Label sets without an address are skipped.
    When two label sets share an address the later one wins.
    """
    inventory = Inventory()
    hosts = inventory.group(ALL_GROUP).hosts
    for label_set in label_sets:
        address = label_set.address
        if not address:
            continue
        variables: dict[str, Any] = label_set.public()
        if host_vars is not None:
            variables.update(host_vars(label_set))
        hosts[address] = Host(variables=variables)
    return inventory
