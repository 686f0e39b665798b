"""
Deployment document loading and dumping.

The document is YAML. Module sections are decoded through the module
registry and discovery sections through the discovery registry, so both
sets can grow without touching this file. Relative paths are taken
relative to the directory holding the document.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from o11y_deploy.config.models import Config, GlobalConfig, TargetGroupConfig, Targets
from o11y_deploy.core.errors import ConfigurationError
from o11y_deploy.discovery import default_discovery_registry
from o11y_deploy.discovery.registry import DiscoveryRegistry
from o11y_deploy.modules import default_registry
from o11y_deploy.modules.registry import ModuleRegistry, summarize_validation_error
from o11y_deploy.relabel import parse_relabel_configs

logger = structlog.get_logger()

DOCUMENT_KEYS = ("global", "target_groups")
GROUP_KEYS = ("name", "modules", "targets")
RELABEL_KEY = "relabel_configs"


def _check_keys(data: Mapping[str, Any], allowed: tuple[str, ...], where: str) -> None:
    unknown = sorted(str(k) for k in data if k not in allowed)
    if unknown:
        raise ConfigurationError(
            f"unknown key(s) in {where}: {', '.join(unknown)}", {"allowed": ",".join(allowed)}
        )


def _mapping(value: Any, where: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"{where} must be a mapping, got {type(value).__name__}")
    return value


def _parse_targets(
    raw: Any,
    where: str,
    discovery_registry: DiscoveryRegistry,
    directory: Path | None,
) -> Targets:
    data = dict(_mapping(raw, where))
    relabel_configs = parse_relabel_configs(data.pop(RELABEL_KEY, None))
    unknown = sorted(str(k) for k in data if k not in discovery_registry)
    if unknown:
        raise ConfigurationError(
            f"unknown key(s) in {where}: {', '.join(unknown)}",
            {"allowed": ",".join([*discovery_registry.keys(), RELABEL_KEY])},
        )
    discovery_configs = discovery_registry.decode_all(data)
    if directory is not None:
        discovery_configs = [cfg.resolve_paths(directory) for cfg in discovery_configs]
    return Targets(discovery_configs=discovery_configs, relabel_configs=relabel_configs)


def _parse_group(
    raw: Any,
    index: int,
    registry: ModuleRegistry,
    discovery_registry: DiscoveryRegistry,
    directory: Path | None,
) -> TargetGroupConfig:
    where = f"target_groups[{index}]"
    data = _mapping(raw, where)
    _check_keys(data, GROUP_KEYS, where)

    name = data.get("name")
    if not isinstance(name, str) or not name:
        raise ConfigurationError(f"{where}: name is required")

    modules = registry.decode_configs(data.get("modules"))
    targets = _parse_targets(data.get("targets"), f"{where}.targets", discovery_registry, directory)
    return TargetGroupConfig(name=name, modules=modules, targets=targets)


def parse_config(
    source: str | Mapping[str, Any] | None,
    directory: str | Path | None = None,
    *,
    registry: ModuleRegistry | None = None,
    discovery_registry: DiscoveryRegistry | None = None,
) -> Config:
    """Parse a deployment document from YAML text or an already loaded mapping.

    Raises:
        ConfigurationError: the document is malformed or holds unknown keys
    """
    registry = registry or default_registry()
    discovery_registry = discovery_registry or default_discovery_registry()
    base = Path(directory) if directory is not None else None

    if isinstance(source, str):
        try:
            source = yaml.safe_load(source)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"invalid YAML: {exc}") from exc
    data = _mapping(source, "document")
    _check_keys(data, DOCUMENT_KEYS, "document")

    try:
        global_cfg = GlobalConfig.model_validate(_mapping(data.get("global"), "global"))
    except ValidationError as exc:
        raise ConfigurationError(f"invalid global: {summarize_validation_error(exc)}") from exc
    if base is not None:
        global_cfg = global_cfg.resolve_paths(base)

    raw_groups = data.get("target_groups") or []
    if not isinstance(raw_groups, list):
        raise ConfigurationError("target_groups must be a list")
    groups = [
        _parse_group(raw, i, registry, discovery_registry, base) for i, raw in enumerate(raw_groups)
    ]

    try:
        return Config(global_=global_cfg, target_groups=groups)
    except ValidationError as exc:
        raise ConfigurationError(summarize_validation_error(exc)) from exc


def load_config(
    path: str | Path,
    *,
    registry: ModuleRegistry | None = None,
    discovery_registry: DiscoveryRegistry | None = None,
) -> Config:
    """Load a deployment document from ``path``.

    Raises:
        ConfigurationError: the file cannot be read or is invalid
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"cannot read configuration {path}: {exc}") from exc

    config = parse_config(
        text,
        path.resolve().parent,
        registry=registry,
        discovery_registry=discovery_registry,
    )
    logger.info("config_loaded", path=str(path), target_groups=len(config.target_groups))
    return config


def config_to_dict(
    config: Config,
    *,
    registry: ModuleRegistry | None = None,
    discovery_registry: DiscoveryRegistry | None = None,
) -> dict[str, Any]:
    registry = registry or default_registry()
    discovery_registry = discovery_registry or default_discovery_registry()

    groups = []
    for group in config.target_groups:
        targets: dict[str, Any] = discovery_registry.encode(group.targets.discovery_configs)
        if group.targets.relabel_configs:
            targets[RELABEL_KEY] = [r.to_dict() for r in group.targets.relabel_configs]
        groups.append(
            {
                "name": group.name,
                "modules": registry.encode_configs(group.modules),
                "targets": targets,
            }
        )
    return {"global": config.global_.model_dump(mode="json"), "target_groups": groups}


def dump_config(
    config: Config,
    *,
    registry: ModuleRegistry | None = None,
    discovery_registry: DiscoveryRegistry | None = None,
) -> str:
    """Serialize ``config`` back to YAML with modules in registry order."""
    data = config_to_dict(config, registry=registry, discovery_registry=discovery_registry)
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
