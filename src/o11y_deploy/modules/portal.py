"""Portal: authenticating reverse proxy in front of every proxied service."""

from __future__ import annotations

from typing import Any
from uuid import NAMESPACE_DNS, uuid5

from pydantic import BaseModel, ConfigDict, Field

from o11y_deploy.labels import LabelSet
from o11y_deploy.model.ansible import Playbook, Role
from o11y_deploy.modules.base import PORTAL_ADDRESS_VAR, Module, ModuleConfig, target_host
from o11y_deploy.pipeline.context import PipelineContext

DEFAULT_ROLE = "user"


class User(BaseModel):
    """A portal account. Passwords are supplied already hashed."""

    model_config = ConfigDict(extra="forbid")

    uuid: str = ""
    username: str
    bcrypt_password: str
    email: str = ""
    email_domain: str = ""
    bcrypt_cost: int = 10
    role: str = ""


def prepare_users(users: list[User]) -> list[dict[str, Any]]:
    """Fill in derived fields: stable uuid, email domain and default role."""
    prepared = []
    for user in users:
        data = user.model_dump()
        data["uuid"] = str(uuid5(NAMESPACE_DNS, user.username))
        if "@" in user.email:
            data["email_domain"] = user.email.split("@", 1)[1]
        if not user.role:
            data["role"] = DEFAULT_ROLE
        prepared.append(data)
    return prepared


class PortalModule(Module):
    cfg: PortalConfig

    def playbook(self, ctx: PipelineContext) -> Playbook | None:
        entries = ctx.reverse_proxy_entries() or []
        return Playbook(
            name="Portal",
            vars={
                "authp_version": self.cfg.authp_version,
                "authp_users": prepare_users(self.cfg.users),
                "o11y_proxy_entries": [entry.to_dict() for entry in entries],
            },
            become=True,
            roles=[Role(name="authp")],
        )

    def host_vars(self, target: LabelSet, group: str) -> dict[str, Any]:
        return {PORTAL_ADDRESS_VAR: f"http://{target_host(target)}"}


class PortalConfig(ModuleConfig):
    name = "portal"
    module_class = PortalModule

    authp_version: str = "1.0.3"
    users: list[User] = Field(default_factory=list)
