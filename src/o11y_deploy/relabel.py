"""
Relabeling engine.

Implements Prometheus ``relabel_config`` semantics over LabelSets:
``process(labels, rules)`` returns the rewritten LabelSet, or None when a
rule dropped the target.
"""

from __future__ import annotations

import hashlib
import re
from enum import StrEnum
from functools import lru_cache
from typing import Any, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from o11y_deploy.core.errors import RelabelError
from o11y_deploy.labels import LabelSet

_REFERENCE_RE = re.compile(r"\$(?:\{(\w+)\}|(\w+))")
_LABEL_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


@lru_cache(maxsize=256)
def _compile(regex: str) -> re.Pattern[str]:
    return re.compile(f"^(?:{regex})$")


class RelabelAction(StrEnum):
    REPLACE = "replace"
    KEEP = "keep"
    DROP = "drop"
    KEEP_EQUAL = "keepequal"
    DROP_EQUAL = "dropequal"
    HASHMOD = "hashmod"
    LABELMAP = "labelmap"
    LABELDROP = "labeldrop"
    LABELKEEP = "labelkeep"
    LOWERCASE = "lowercase"
    UPPERCASE = "uppercase"


class RelabelConfig(BaseModel):
    """One relabeling rule, with Prometheus defaults."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    source_labels: list[str] = Field(default_factory=list)
    separator: str = ";"
    target_label: str = ""
    regex: str = "(.*)"
    modulus: int = 0
    replacement: str = "$1"
    action: RelabelAction = RelabelAction.REPLACE

    @field_validator("action", mode="before")
    @classmethod
    def _lower_action(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    @field_validator("regex")
    @classmethod
    def _check_regex(cls, value: str) -> str:
        try:
            _compile(value)
        except re.error as exc:
            raise ValueError(f"invalid regex {value!r}: {exc}") from exc
        return value

    @model_validator(mode="after")
    def _check(self) -> "RelabelConfig":
        needs_target = {
            RelabelAction.REPLACE,
            RelabelAction.HASHMOD,
            RelabelAction.LOWERCASE,
            RelabelAction.UPPERCASE,
            RelabelAction.KEEP_EQUAL,
            RelabelAction.DROP_EQUAL,
        }
        if self.action in needs_target and not self.target_label:
            raise ValueError(f"relabel configuration for {self.action} action requires 'target_label'")
        if self.action == RelabelAction.HASHMOD and self.modulus <= 0:
            raise ValueError("relabel configuration for hashmod requires non-zero modulus")
        return self

    @property
    def compiled(self) -> re.Pattern[str]:
        return _compile(self.regex)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


def parse_relabel_configs(raw: Sequence[dict[str, Any]] | None) -> list[RelabelConfig]:
    """Validate a list of raw relabel rules."""
    configs = []
    for i, item in enumerate(raw or []):
        try:
            configs.append(RelabelConfig.model_validate(item or {}))
        except ValueError as exc:
            raise RelabelError(f"invalid relabel_configs[{i}]: {exc}") from exc
    return configs


def _expand(match: re.Match[str], template: str) -> str:
    def repl(ref: re.Match[str]) -> str:
        key = ref.group(1) or ref.group(2)
        try:
            value = match.group(int(key)) if key.isdigit() else match.group(key)
        except IndexError:
            return ""
        return value or ""

    return _REFERENCE_RE.sub(repl, template)


def _hashmod(value: str, modulus: int) -> int:
    digest = hashlib.md5(value.encode()).digest()
    return int.from_bytes(digest[8:], "big") % modulus


def apply_rule(labels: dict[str, str], cfg: RelabelConfig) -> bool:
    """Apply one rule in place. Returns False if the target is dropped."""
    value = cfg.separator.join(labels.get(name, "") for name in cfg.source_labels)
    action = cfg.action

    if action == RelabelAction.DROP:
        return not cfg.compiled.match(value)
    if action == RelabelAction.KEEP:
        return bool(cfg.compiled.match(value))
    if action == RelabelAction.DROP_EQUAL:
        return labels.get(cfg.target_label, "") != value
    if action == RelabelAction.KEEP_EQUAL:
        return labels.get(cfg.target_label, "") == value

    if action == RelabelAction.REPLACE:
        match = cfg.compiled.match(value)
        if not match:
            return True
        target = _expand(match, cfg.target_label)
        if not _LABEL_NAME_RE.match(target):
            return True
        replaced = _expand(match, cfg.replacement)
        if replaced:
            labels[target] = replaced
        else:
            labels.pop(target, None)
    elif action == RelabelAction.LOWERCASE:
        labels[cfg.target_label] = value.lower()
    elif action == RelabelAction.UPPERCASE:
        labels[cfg.target_label] = value.upper()
    elif action == RelabelAction.HASHMOD:
        labels[cfg.target_label] = str(_hashmod(value, cfg.modulus))
    elif action == RelabelAction.LABELMAP:
        for name, lvalue in list(labels.items()):
            match = cfg.compiled.match(name)
            if match:
                labels[_expand(match, cfg.replacement)] = lvalue
    elif action == RelabelAction.LABELDROP:
        for name in [n for n in labels if cfg.compiled.match(n)]:
            del labels[name]
    elif action == RelabelAction.LABELKEEP:
        for name in [n for n in labels if not cfg.compiled.match(n)]:
            del labels[name]
    return True


def process(label_set: LabelSet, rules: Sequence[RelabelConfig]) -> LabelSet | None:
    """Run ``label_set`` through ``rules``.

    Returns the relabeled LabelSet, or None when a rule dropped it or no
    labels remain.
    """
    labels = label_set.to_dict()
    for cfg in rules:
        if not apply_rule(labels, cfg):
            return None
    result = LabelSet(labels)
    if not result:
        return None
    return result
