"""
Module registry.

Maps module names to their configuration types so that independently
developed modules can add a ``<name>_module`` section to the configuration
document without the document schema knowing about them.

The registry is filled once at startup and frozen by the first decode or
encode. Entries are kept sorted by their namespaced field key, never by
registration order, so two processes with the same modules produce
byte-identical encoded configuration.
"""

from __future__ import annotations

import bisect
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from o11y_deploy.core.errors import ConfigurationError, RegistrationError, UnregisteredModuleError
from o11y_deploy.modules.base import ModuleConfig

logger = structlog.get_logger()

CONFIG_FIELD_PREFIX = "AUTO_MODULE_"
MODULE_KEY_SUFFIX = "_module"


@dataclass(frozen=True)
class RegisteredModule:
    """A registered module configuration type."""

    name: str
    config_type: type[ModuleConfig]
    key: str

    @property
    def field_key(self) -> str:
        """Namespaced key that fixes the serialization order."""
        return CONFIG_FIELD_PREFIX + self.key


class ModuleRegistry:
    """Catalog of module configuration types, keyed by module name."""

    def __init__(self) -> None:
        self._by_name: dict[str, RegisteredModule] = {}
        self._by_key: dict[str, RegisteredModule] = {}
        self._field_keys: dict[type, str] = {}
        self._entries: list[RegisteredModule] = []
        self._frozen = False

    def register(self, config: type[ModuleConfig] | ModuleConfig) -> None:
        """Register a module configuration type.

        Raises:
            RegistrationError: if the name is already taken, the type has no
                name, or the registry has already been used to parse
                configuration.
        """
        config_type = config if isinstance(config, type) else type(config)
        name = config_type.name
        if not name:
            raise RegistrationError(f"module: {config_type.__name__} does not define a name")
        if self._frozen:
            raise RegistrationError(
                f"module: cannot register {name!r} after configuration has been parsed"
            )
        if name in self._by_name:
            raise RegistrationError(f"module: Config named {name!r} is already registered")

        entry = RegisteredModule(name=name, config_type=config_type, key=name + MODULE_KEY_SUFFIX)
        keys = [e.field_key for e in self._entries]
        self._entries.insert(bisect.bisect_right(keys, entry.field_key), entry)
        self._by_name[name] = entry
        self._by_key[entry.key] = entry
        self._field_keys[config_type] = entry.field_key

    def freeze(self) -> None:
        if not self._frozen:
            logger.debug("module_registry_frozen", modules=self.names())
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def entries(self) -> tuple[RegisteredModule, ...]:
        """Registered modules in serialization order."""
        return tuple(self._entries)

    def names(self) -> list[str]:
        return [e.name for e in self._entries]

    def get(self, name: str) -> RegisteredModule | None:
        return self._by_name.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._entries)

    def decode_configs(self, fragment: Mapping[str, Any] | None) -> list[ModuleConfig]:
        """Decode a ``modules`` document fragment.

        Returns exactly one configuration per registered module, in registry
        order. Modules missing from the fragment (or given as an empty
        value) get their defaults.

        Raises:
            UnregisteredModuleError: a key matches no registered module
            ConfigurationError: the fragment is not a mapping or a module's
                own fields fail validation
        """
        self.freeze()
        if fragment is None:
            fragment = {}
        if not isinstance(fragment, Mapping):
            raise ConfigurationError(
                f"modules must be a mapping, got {type(fragment).__name__}"
            )

        unknown = sorted(str(k) for k in fragment if k not in self._by_key)
        if unknown:
            raise UnregisteredModuleError(
                f"unregistered module key(s): {', '.join(unknown)}",
                {"known": ",".join(self._by_key)},
            )

        configs: list[ModuleConfig] = []
        for entry in self._entries:
            raw = fragment.get(entry.key)
            if raw is None:
                configs.append(entry.config_type.default())
                continue
            try:
                configs.append(entry.config_type.model_validate(raw))
            except ValidationError as exc:
                raise ConfigurationError(
                    f"invalid {entry.key}: {summarize_validation_error(exc)}",
                    {"module": entry.name},
                ) from exc
        return configs

    def encode_configs(self, configs: Iterable[ModuleConfig]) -> dict[str, Any]:
        """Encode configurations back into a ``modules`` fragment.

        Keys come out in registry order regardless of the input order.

        Raises:
            UnregisteredModuleError: a configuration's type is not registered
        """
        self.freeze()
        slots: dict[str, ModuleConfig] = {}
        for cfg in configs:
            field_key = self._field_keys.get(type(cfg))
            if field_key is None:
                raise UnregisteredModuleError(
                    f"module: cannot marshal unregistered Config type: {type(cfg).__name__}"
                )
            slots[field_key] = cfg

        return {
            entry.key: slots[entry.field_key].model_dump(mode="json")
            for entry in self._entries
            if entry.field_key in slots
        }

    def encode_yaml(self, configs: Iterable[ModuleConfig]) -> str:
        return yaml.safe_dump(self.encode_configs(configs), default_flow_style=False, sort_keys=False)


def build_registry(config_types: Sequence[type[ModuleConfig]]) -> ModuleRegistry:
    """Create a registry holding ``config_types``."""
    registry = ModuleRegistry()
    for config_type in config_types:
        registry.register(config_type)
    return registry


def summarize_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "<root>"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)
