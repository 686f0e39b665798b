"""Frontend: the o11y-deploy web UI."""

from __future__ import annotations

from o11y_deploy.model.ansible import Playbook, Role
from o11y_deploy.modules.base import Module, ModuleConfig
from o11y_deploy.pipeline.context import PipelineContext


class FrontendModule(Module):
    cfg: FrontendConfig

    def playbook(self, ctx: PipelineContext) -> Playbook | None:
        return Playbook(
            name="Frontend",
            vars={"o11y_deploy_version": self.cfg.frontend_version},
            become=True,
            roles=[Role(name="o11y-deploy-frontend")],
        )


class FrontendConfig(ModuleConfig):
    name = "frontend"
    module_class = FrontendModule

    frontend_version: str = "latest"
