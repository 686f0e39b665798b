"""Commands that inspect the deployment document and the module registry."""

from __future__ import annotations

from o11y_deploy.cli.ux import console, print_table, success, warning
from o11y_deploy.config import dump_config, load_config
from o11y_deploy.core.errors import ExitCode, main_with_error_handling
from o11y_deploy.deploy import ordering_hazards
from o11y_deploy.modules import default_registry


@main_with_error_handling()
def check_config_command(config_file: str) -> int:
    """Validate the document and report ordering hazards without deploying."""
    config = load_config(config_file)
    if not config.target_groups:
        warning("configuration has no target groups")

    rows = []
    for group in config.target_groups:
        modules = [m.name for m in group.enabled_modules()]
        rows.append(
            [group.name, ", ".join(modules) or "-", str(len(group.targets.discovery_configs))]
        )
    print_table("Target groups", ["Group", "Enabled modules", "Discovery sources"], rows)

    for group in ordering_hazards(config):
        warning(
            f"{group} comes before {config.global_.metrics_backend_group!r}: "
            "its modules will not see the Prometheus servers"
        )
    success(f"{config_file} is valid")
    return ExitCode.SUCCESS


@main_with_error_handling()
def dump_config_command(config_file: str) -> int:
    """Print the document as it is understood, defaults included."""
    config = load_config(config_file)
    console.print(dump_config(config), end="", markup=False, highlight=False, soft_wrap=True)
    return ExitCode.SUCCESS


@main_with_error_handling()
def list_modules_command() -> int:
    registry = default_registry()
    rows = []
    for entry in registry.entries():
        defaults = entry.config_type.default()
        rows.append([entry.name, entry.key, "yes" if defaults.is_enabled() else "no"])
    print_table("Registered modules", ["Module", "Key", "Enabled by default"], rows)
    return ExitCode.SUCCESS
