"""
Deployment orchestration.

A run makes two sequential passes over the target groups, in configuration
order:

Phase 1 discovers and relabels each group's targets, lets every enabled
module project them, and collects the modules' side artifacts (rule groups,
dashboards, reverse proxy entries, alertmanager servers) into the pipeline
context.

Phase 2 builds each group's inventory, generates one playbook per enabled
module from the context, and hands both to the runner. The metrics backend
group records its Prometheus servers when its phase 2 starts, so modules of
groups processed earlier in phase 2 do not see them.

Module failures abort the run. Runner failures are collected and reported
once every group has been attempted.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any

import structlog

from o11y_deploy.config.models import Config, TargetGroupConfig
from o11y_deploy.core.errors import ConfigurationError, ModuleError, RunnerError
from o11y_deploy.deploy.inventory import generate_inventory
from o11y_deploy.deploy.results import DeployResult, GroupResult
from o11y_deploy.discovery import discover_label_sets
from o11y_deploy.discovery.base import DiscoveryConfig
from o11y_deploy.labels import LabelSet
from o11y_deploy.logging import bind_context
from o11y_deploy.model.ansible import Inventory, Playbook
from o11y_deploy.model.services import PrometheusServer
from o11y_deploy.modules.base import (
    AlertmanagerServersModule,
    Module,
    ModuleOptions,
    PrometheusServersModule,
    ReverseProxiedModule,
)
from o11y_deploy.pipeline.context import PipelineContext
from o11y_deploy.relabel import process
from o11y_deploy.runner.ansible import Runner

logger = structlog.get_logger()

DiscoverFunc = Callable[[Sequence[DiscoveryConfig], timedelta], list[LabelSet]]


@dataclass
class GroupState:
    """Phase 1 output of one target group."""

    config: TargetGroupConfig
    label_sets: list[LabelSet] = field(default_factory=list)
    modules: list[Module] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.config.name


def ordering_hazards(config: Config) -> list[str]:
    """Warn about groups whose modules will not see the Prometheus servers.

    The metrics backend group only publishes its servers once its own
    phase 2 starts. Returns the names of the affected groups.
    """
    backend = config.global_.metrics_backend_group
    names = [g.name for g in config.target_groups]
    backend_index = names.index(backend) if backend in names else len(names)

    affected = []
    for group in config.target_groups[:backend_index]:
        consumers = [m.name for m in group.enabled_modules() if type(m).consumes_prometheus_servers]
        if not consumers:
            continue
        affected.append(group.name)
        logger.warning(
            "ordering_hazard",
            group=group.name,
            modules=consumers,
            metrics_backend_group=backend,
            backend_configured=backend in names,
        )
    return affected


class Deployer:
    """Drives discovery, module projection and playbook generation for a Config."""

    def __init__(
        self,
        config: Config,
        runner: Runner,
        *,
        discover: DiscoverFunc = discover_label_sets,
    ) -> None:
        self.config = config
        self.runner = runner
        self.discover = discover

    def new_context(self) -> PipelineContext:
        return PipelineContext(
            data_dir=Path(self.config.global_.data_directory),
            metrics_backend_group=self.config.global_.metrics_backend_group,
        )

    def run(self) -> DeployResult:
        """Deploy every target group.

        Raises:
            ConfigurationError: pre-flight validation failed
            DiscoveryError: a discovery backend could not be started
            RelabelError: a relabeling rule could not be applied
            ModuleError: a module failed to project targets or build its playbook
            RunnerError: the runner failed for at least one group
        """
        started = time.monotonic()
        self.preflight()
        ctx = self.new_context()
        logger.debug("deployment_started", target_groups=len(self.config.target_groups))

        states = [self.project_group(group, ctx) for group in self.config.target_groups]

        result = DeployResult()
        for state in states:
            result.groups.append(self.deploy_group(state, ctx))
        result.duration_seconds = time.monotonic() - started

        if not result.success:
            failures = {g.name: g.output for g in result.groups if not g.success}
            raise RunnerError(
                f"runner failed for {len(failures)} target group(s): {', '.join(failures)}",
                failures,
                result=result,
            )
        logger.info("deployment_done", duration_seconds=round(result.duration_seconds, 2))
        return result

    # -- pre-flight --------------------------------------------------------

    def preflight(self) -> None:
        if not self.config.target_groups:
            raise ConfigurationError("configuration must have at least one target group")
        ordering_hazards(self.config)

        data_dir = Path(self.config.global_.data_directory)
        if data_dir.exists():
            logger.debug("data_directory_present", path=str(data_dir))
            return
        try:
            data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigurationError(
                f"cannot create data directory {data_dir}: {exc}", {"path": str(data_dir)}
            ) from exc
        logger.info("data_directory_created", path=str(data_dir))

    # -- phase 1 -----------------------------------------------------------

    def resolve_targets(self, group: TargetGroupConfig) -> list[LabelSet]:
        """Discover and relabel the targets of ``group``."""
        discovered = self.discover(
            group.targets.discovery_configs, self.config.global_.sync_time
        )
        label_sets = []
        for label_set in discovered:
            relabeled = process(label_set, group.targets.relabel_configs)
            if relabeled is not None:
                label_sets.append(relabeled)
        return label_sets

    def project_group(self, group: TargetGroupConfig, ctx: PipelineContext) -> GroupState:
        log = bind_context(group=group.name, phase="targets")
        state = GroupState(config=group, label_sets=self.resolve_targets(group))
        log.info("targets_resolved", targets=len(state.label_sets))

        for cfg in group.modules:
            if not cfg.is_enabled():
                continue
            try:
                module = cfg.new_module(ModuleOptions(logger=log.bind(module=cfg.name)))
                self.project_module(module, state, ctx)
            except ModuleError as exc:
                raise ModuleError(
                    exc.message, module=cfg.name, group=group.name, phase="targets"
                ) from exc
            except Exception as exc:
                raise ModuleError(
                    f"target projection failed: {exc}",
                    module=cfg.name,
                    group=group.name,
                    phase="targets",
                ) from exc
            state.modules.append(module)
        return state

    def project_module(self, module: Module, state: GroupState, ctx: PipelineContext) -> None:
        targets = module.get_targets(state.label_sets, state.name)
        ctx.add_module_targets(state.name, module.name, targets)
        ctx.add_rule_groups(state.name, [module.get_rules(state.name)])
        ctx.add_dashboards(module.get_dashboards())
        ctx.add_dashboard_files(module.get_dashboard_files())

        if isinstance(module, ReverseProxiedModule):
            ctx.add_reverse_proxy_entries(module.reverse_proxy(state.label_sets, state.name))
        if isinstance(module, AlertmanagerServersModule):
            ctx.add_alertmanager_servers(
                state.name, module.get_alertmanager_servers(state.label_sets, state.name)
            )
        module.logger.debug("module_projected", targets=len(targets))

    # -- phase 2 -----------------------------------------------------------

    def build_inventory(self, state: GroupState) -> Inventory:
        def host_vars(label_set: LabelSet) -> dict[str, Any]:
            variables: dict[str, Any] = {}
            for module in state.modules:
                try:
                    variables.update(module.host_vars(label_set, state.name))
                except Exception as exc:
                    raise ModuleError(
                        f"host variables failed: {exc}",
                        module=module.name,
                        group=state.name,
                        phase="host_vars",
                    ) from exc
            return variables

        return generate_inventory(state.label_sets, host_vars)

    def prometheus_servers(self, state: GroupState, inventory: Inventory) -> list[PrometheusServer]:
        servers: list[PrometheusServer] = []
        for module in state.modules:
            if isinstance(module, PrometheusServersModule):
                servers.extend(module.get_prometheus_servers(state.label_sets, state.name))
        if servers:
            return servers
        return [PrometheusServer(name=host, url=f"http://{host}") for host in inventory.hosts]

    def generate_playbooks(self, state: GroupState, ctx: PipelineContext) -> list[Playbook]:
        playbooks = []
        for module in state.modules:
            try:
                playbook = module.playbook(ctx)
            except ModuleError as exc:
                raise ModuleError(
                    exc.message, module=module.name, group=state.name, phase="playbook"
                ) from exc
            except Exception as exc:
                raise ModuleError(
                    f"playbook generation failed: {exc}",
                    module=module.name,
                    group=state.name,
                    phase="playbook",
                ) from exc
            if playbook is not None:
                playbooks.append(playbook)
        return playbooks

    def deploy_group(self, state: GroupState, ctx: PipelineContext) -> GroupResult:
        log = bind_context(group=state.name, phase="playbook")
        inventory = self.build_inventory(state)

        if state.name == ctx.metrics_backend_group:
            servers = self.prometheus_servers(state, inventory)
            ctx.set_prometheus_servers(servers)
            log.info("prometheus_servers_recorded", servers=len(servers))

        playbooks = self.generate_playbooks(state, ctx)
        result = GroupResult(
            name=state.name,
            targets=len(inventory.hosts),
            playbooks=[pb.name for pb in playbooks],
        )
        if not playbooks:
            log.info("runner_skipped", reason="no playbooks")
            result.skipped = True
            return result

        run = self.runner.run(state.name, inventory, playbooks)
        result.success = run.success
        result.output = run.output
        if run.success:
            log.info("group_deployed", playbooks=result.playbooks, hosts=result.targets)
        else:
            log.error("group_failed", playbooks=result.playbooks)
        return result
