"""
Ansible runner.

Executes one target group's playbooks with ``ansible-playbook``. The
inventory, the playbooks and an ``ansible.cfg`` are written as YAML/INI to
a temporary directory that is removed afterwards unless debugging.
"""

from __future__ import annotations

import copy
import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence, runtime_checkable

import structlog
import yaml

from o11y_deploy.config.models import GlobalConfig
from o11y_deploy.model.ansible import ALL_GROUP, Inventory, Playbook

logger = structlog.get_logger()

KNOWN_HOSTS_FILE = "known_hosts"


@dataclass
class RunResult:
    """Outcome of running one group's playbooks."""

    success: bool
    output: str = ""


@runtime_checkable
class Runner(Protocol):
    def run(self, group: str, inventory: Inventory, playbooks: Sequence[Playbook]) -> RunResult:
        ...


def prepare_inventory(inventory: Inventory, global_cfg: GlobalConfig) -> Inventory:
    """Copy ``inventory`` with the connection variables of ``global_cfg`` set on ``all``.

    Raises:
        OSError: if the become password file cannot be read
    """
    prepared = copy.deepcopy(inventory)
    variables = prepared.group(ALL_GROUP).variables

    if global_cfg.ansible_trust_on_first_use:
        known_hosts = Path(global_cfg.data_directory) / KNOWN_HOSTS_FILE
        variables["ansible_ssh_extra_args"] = (
            f'-o UserKnownHostsFile="{known_hosts}" -o StrictHostKeyChecking=no'
        )
    variables["ansible_user"] = global_cfg.ansible_user
    if global_cfg.ansible_ssh_key_path:
        variables["ansible_ssh_private_key_file"] = global_cfg.ansible_ssh_key_path
    if global_cfg.ansible_become_password_file:
        password = Path(global_cfg.ansible_become_password_file).read_text(encoding="utf-8")
        variables["ansible_become_pass"] = password.strip()
    return prepared


def render_ansible_cfg(roles_path: Path) -> str:
    return f"[defaults]\nroles_path = {roles_path}\n"


class AnsibleRunner:
    """Runs playbooks through the ansible-playbook executable."""

    def __init__(
        self,
        global_cfg: GlobalConfig,
        ansible_playbook: Path,
        roles_path: Path,
        *,
        debug: bool = False,
        extra_args: Sequence[str] = (),
    ) -> None:
        self.global_cfg = global_cfg
        self.ansible_playbook = ansible_playbook
        self.roles_path = roles_path
        self.debug = debug
        self.extra_args = list(extra_args)

    def write_files(
        self, workdir: Path, inventory: Inventory, playbooks: Sequence[Playbook]
    ) -> tuple[Path, Path, Path]:
        inventory_file = workdir / "inventory.yml"
        playbook_file = workdir / "playbook.yml"
        cfg_file = workdir / "ansible.cfg"

        inventory_file.write_text(
            yaml.safe_dump(inventory.to_dict(), default_flow_style=False, sort_keys=False)
        )
        playbook_file.write_text(
            yaml.safe_dump(
                [pb.to_dict() for pb in playbooks], default_flow_style=False, sort_keys=False
            )
        )
        cfg_file.write_text(render_ansible_cfg(self.roles_path))
        return inventory_file, playbook_file, cfg_file

    def command(self, inventory_file: Path, playbook_file: Path) -> list[str]:
        return [
            str(self.ansible_playbook),
            "-i",
            str(inventory_file),
            str(playbook_file),
            *self.extra_args,
        ]

    def run(self, group: str, inventory: Inventory, playbooks: Sequence[Playbook]) -> RunResult:
        log = logger.bind(group=group)
        try:
            prepared = prepare_inventory(inventory, self.global_cfg)
        except OSError as exc:
            log.error("become_password_unreadable", error=str(exc))
            return RunResult(success=False, output=f"cannot read become password file: {exc}")

        workdir = Path(tempfile.mkdtemp(prefix="o11y_"))
        try:
            inventory_file, playbook_file, cfg_file = self.write_files(
                workdir, prepared, playbooks
            )
            env = dict(os.environ)
            env["ANSIBLE_CONFIG"] = str(cfg_file)
            if self.debug:
                env["ANSIBLE_DEBUG"] = "1"

            args = self.command(inventory_file, playbook_file)
            log.info("ansible_run_started", playbooks=len(playbooks), hosts=len(prepared.hosts))
            try:
                completed = subprocess.run(
                    args, env=env, capture_output=True, text=True, check=False
                )
            except OSError as exc:
                log.error("ansible_run_failed", error=str(exc))
                return RunResult(success=False, output=str(exc))

            output = completed.stdout + completed.stderr
            if completed.returncode != 0:
                log.error("ansible_run_failed", returncode=completed.returncode)
                return RunResult(success=False, output=output)
            log.info("ansible_run_completed")
            return RunResult(success=True, output=output)
        finally:
            if self.debug:
                log.info("ansible_files_kept", path=str(workdir))
            else:
                shutil.rmtree(workdir, ignore_errors=True)
