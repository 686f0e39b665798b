"""Data models for Prometheus alerting rules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class AlertingRule:
    """
    Prometheus alerting rule.

    Rendered in the format Prometheus expects under ``groups[].rules``.
    """

    alert: str
    expr: str
    duration: str = "5m"  # How long condition must be true
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        rule: dict[str, Any] = {
            "alert": self.alert,
            "expr": self.expr,
            "for": self.duration,
        }
        if self.labels:
            rule["labels"] = dict(self.labels)
        if self.annotations:
            rule["annotations"] = dict(self.annotations)
        return rule


@dataclass
class RuleGroup:
    """A group of rules evaluated together by Prometheus."""

    name: str
    rules: list[Any] = field(default_factory=list)
    interval: str | None = None

    def is_empty(self) -> bool:
        return not self.rules

    def to_dict(self) -> dict[str, Any]:
        group: dict[str, Any] = {"name": self.name}
        if self.interval:
            group["interval"] = self.interval
        group["rules"] = [rule.to_dict() for rule in self.rules]
        return group
