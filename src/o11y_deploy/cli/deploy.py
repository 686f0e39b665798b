"""
Deploy command.

Loads the deployment document, runs discovery and module generation for
every target group, and executes the playbooks with ansible-playbook.
"""

from __future__ import annotations

from o11y_deploy.cli.ux import console, header, info, print_table, success
from o11y_deploy.config import get_settings, load_config
from o11y_deploy.core.errors import ExitCode, RunnerError, main_with_error_handling
from o11y_deploy.deploy import Deployer, DeployResult
from o11y_deploy.runner import AnsibleRunner


def _print_summary(result: DeployResult) -> None:
    rows = []
    for group in result.groups:
        if group.skipped:
            status = "[muted]skipped[/muted]"
        elif group.success:
            status = "[success]deployed[/success]"
        else:
            status = "[error]failed[/error]"
        rows.append([group.name, str(group.targets), ", ".join(group.playbooks) or "-", status])
    print_table("Target groups", ["Group", "Hosts", "Playbooks", "Status"], rows)


@main_with_error_handling()
def deploy_command(config_file: str, debug: bool = False) -> int:
    settings = get_settings()
    config = load_config(config_file)

    header(f"Deploying {config_file}")
    ansible_playbook = settings.ansible_playbook_path()
    roles_path = settings.deps_home / "roles"
    info(f"Using {ansible_playbook} with roles from {roles_path}")
    runner = AnsibleRunner(
        config.global_, ansible_playbook, roles_path, debug=debug or settings.runner_debug
    )
    try:
        result = Deployer(config, runner).run()
    except RunnerError as exc:
        if exc.result is not None:
            _print_summary(exc.result)
        raise

    _print_summary(result)
    success(f"Deployment done in {result.duration_seconds:.1f}s")
    console.print()
    return ExitCode.SUCCESS
