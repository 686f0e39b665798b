"""Service modules and the registry that decodes their configuration."""

from functools import lru_cache

from o11y_deploy.modules.alertmanager import AlertmanagerConfig
from o11y_deploy.modules.base import (
    AlertmanagerServersModule,
    Module,
    ModuleConfig,
    ModuleOptions,
    PrometheusServersModule,
    ReverseProxiedModule,
)
from o11y_deploy.modules.frontend import FrontendConfig
from o11y_deploy.modules.grafana import GrafanaConfig
from o11y_deploy.modules.linux import LinuxConfig
from o11y_deploy.modules.portal import PortalConfig
from o11y_deploy.modules.prometheus import PrometheusConfig
from o11y_deploy.modules.registry import ModuleRegistry, RegisteredModule, build_registry

BUNDLED_MODULES = [
    AlertmanagerConfig,
    FrontendConfig,
    GrafanaConfig,
    LinuxConfig,
    PortalConfig,
    PrometheusConfig,
]


@lru_cache
def default_registry() -> ModuleRegistry:
    """Registry holding the bundled modules, shared by the whole process."""
    return build_registry(BUNDLED_MODULES)


__all__ = [
    "AlertmanagerConfig",
    "AlertmanagerServersModule",
    "BUNDLED_MODULES",
    "FrontendConfig",
    "GrafanaConfig",
    "LinuxConfig",
    "Module",
    "ModuleConfig",
    "ModuleOptions",
    "ModuleRegistry",
    "PortalConfig",
    "PrometheusConfig",
    "PrometheusServersModule",
    "RegisteredModule",
    "ReverseProxiedModule",
    "build_registry",
    "default_registry",
]
