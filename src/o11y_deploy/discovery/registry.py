"""
Discovery configuration registry.

Maps the keys of a target group's ``targets`` section (``static_configs``,
``file_sd_configs``, ...) to their configuration classes. Each key holds a
list of configurations.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from pydantic import ValidationError

from o11y_deploy.core.errors import ConfigurationError, RegistrationError
from o11y_deploy.discovery.base import DiscoveryConfig


class DiscoveryRegistry:
    """In-memory registry of discovery configuration types."""

    def __init__(self) -> None:
        self._types: dict[str, type[DiscoveryConfig]] = {}

    def register(self, config_type: type[DiscoveryConfig]) -> None:
        key = config_type.key
        if not key:
            raise RegistrationError(f"discovery: {config_type.__name__} does not define a key")
        if key in self._types:
            raise RegistrationError(f"discovery: key {key!r} is already registered")
        self._types[key] = config_type

    def keys(self) -> list[str]:
        return sorted(self._types)

    def __contains__(self, key: object) -> bool:
        return key in self._types

    def decode(self, key: str, raw: Any) -> list[DiscoveryConfig]:
        """Decode the list stored under ``key``.

        Raises:
            ConfigurationError: unknown key, not a list, or invalid entry
        """
        config_type = self._types.get(key)
        if config_type is None:
            raise ConfigurationError(
                f"unknown discovery key {key!r}", {"known": ",".join(self.keys())}
            )
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise ConfigurationError(f"{key} must be a list, got {type(raw).__name__}")
        configs = []
        for i, item in enumerate(raw):
            try:
                configs.append(config_type.model_validate(item or {}))
            except ValidationError as exc:
                raise ConfigurationError(f"invalid {key}[{i}]: {exc.errors()[0]['msg']}") from exc
        return configs

    def encode(self, configs: Iterable[DiscoveryConfig]) -> dict[str, list[dict[str, Any]]]:
        out: dict[str, list[dict[str, Any]]] = {}
        for cfg in configs:
            if type(cfg).key not in self._types:
                raise ConfigurationError(
                    f"discovery: cannot marshal unregistered type {type(cfg).__name__}"
                )
            out.setdefault(type(cfg).key, []).append(cfg.model_dump(mode="json"))
        return {key: out[key] for key in sorted(out)}

    def decode_all(self, fragment: Mapping[str, Any]) -> list[DiscoveryConfig]:
        """Decode every discovery key of ``fragment``, in sorted key order."""
        configs: list[DiscoveryConfig] = []
        for key in sorted(fragment):
            configs.extend(self.decode(key, fragment[key]))
        return configs


def build_discovery_registry(config_types: Sequence[type[DiscoveryConfig]]) -> DiscoveryRegistry:
    registry = DiscoveryRegistry()
    for config_type in config_types:
        registry.register(config_type)
    return registry
