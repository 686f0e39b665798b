"""Target discovery: backends, their configuration registry and the fan-in."""

from functools import lru_cache

from o11y_deploy.discovery.base import Discoverer, DiscoveryConfig
from o11y_deploy.discovery.fanin import discover_label_sets, populate_targets
from o11y_deploy.discovery.file_sd import FileSDConfig
from o11y_deploy.discovery.http_sd import HTTPSDConfig
from o11y_deploy.discovery.registry import DiscoveryRegistry, build_discovery_registry
from o11y_deploy.discovery.static import StaticConfig
from o11y_deploy.discovery.targetgroup import TargetGroup

BUNDLED_DISCOVERY = [FileSDConfig, HTTPSDConfig, StaticConfig]


@lru_cache
def default_discovery_registry() -> DiscoveryRegistry:
    return build_discovery_registry(BUNDLED_DISCOVERY)


__all__ = [
    "BUNDLED_DISCOVERY",
    "Discoverer",
    "DiscoveryConfig",
    "DiscoveryRegistry",
    "FileSDConfig",
    "HTTPSDConfig",
    "StaticConfig",
    "TargetGroup",
    "build_discovery_registry",
    "default_discovery_registry",
    "discover_label_sets",
    "populate_targets",
]
