"""
Deployment document models.

The document has a ``global`` block and a list of ``target_groups``. Each
group names its modules (decoded by the module registry) and its
``targets`` section (discovery configurations plus relabeling rules).
Unknown keys are rejected everywhere.
"""

from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from o11y_deploy.discovery.base import DiscoveryConfig
from o11y_deploy.durations import parse_duration
from o11y_deploy.modules.base import ModuleConfig
from o11y_deploy.relabel import RelabelConfig


def _join(directory: Path, path: str) -> str:
    if not path or os.path.isabs(path):
        return path
    return str(directory / path)


class GlobalConfig(BaseModel):
    """Settings shared by every target group."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    ansible_ssh_key_path: str = ""
    ansible_become_password_file: str = ""
    ansible_user: str = "ansible"
    sd_sync_time: str = "10s"
    data_directory: str = "data"
    # Older documents use the misspelled key.
    ansible_trust_on_first_use: bool = Field(
        default=True,
        validation_alias=AliasChoices("ansible_trust_on_first_use", "ansible_trust_on_firs_use"),
    )
    metrics_backend_group: str = "prometheus"

    @field_validator("sd_sync_time")
    @classmethod
    def _check_sync_time(cls, value: str) -> str:
        parse_duration(value)
        return value

    @property
    def sync_time(self) -> timedelta:
        return parse_duration(self.sd_sync_time)

    def resolve_paths(self, directory: Path) -> GlobalConfig:
        return self.model_copy(
            update={
                "ansible_ssh_key_path": _join(directory, self.ansible_ssh_key_path),
                "ansible_become_password_file": _join(
                    directory, self.ansible_become_password_file
                ),
                "data_directory": _join(directory, self.data_directory),
            }
        )


class Targets(BaseModel):
    """Where a target group's hosts come from and how their labels are rewritten."""

    model_config = ConfigDict(extra="forbid")

    discovery_configs: list[DiscoveryConfig] = Field(default_factory=list)
    relabel_configs: list[RelabelConfig] = Field(default_factory=list)


class TargetGroupConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    modules: list[ModuleConfig] = Field(default_factory=list)
    targets: Targets = Field(default_factory=Targets)

    def enabled_modules(self) -> list[ModuleConfig]:
        return [m for m in self.modules if m.is_enabled()]


class Config(BaseModel):
    """A whole deployment document."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    target_groups: list[TargetGroupConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_group_names(self) -> Config:
        seen: set[str] = set()
        for group in self.target_groups:
            if group.name in seen:
                raise ValueError(f"duplicate target group name {group.name!r}")
            seen.add(group.name)
        return self

    def group(self, name: str) -> TargetGroupConfig | None:
        for group in self.target_groups:
            if group.name == name:
                return group
        return None
