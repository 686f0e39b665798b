"""Target groups as emitted by discovery backends."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from o11y_deploy.labels import ADDRESS_LABEL, LabelSet, merge_group_labels


@dataclass
class TargetGroup:
    """
    A set of targets sharing common labels.

    ``targets`` holds host-level label mappings, each normally carrying the
    address label. ``labels`` apply to every target unless a target sets the
    same label itself.
    """

    source: str
    targets: list[dict[str, str]] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any], source: str) -> TargetGroup:
        """Build from the Prometheus file/HTTP SD shape ``{targets, labels}``.

        Raises:
            ValueError: if the payload does not have that shape or a target
                is not a non-empty string
        """
        if not isinstance(data, dict):
            raise ValueError(f"target group must be a mapping, got {type(data).__name__}")
        targets = data.get("targets") or []
        labels = data.get("labels") or {}
        if not isinstance(targets, list):
            raise ValueError("targets must be a list")
        if not isinstance(labels, dict):
            raise ValueError("labels must be a mapping")
        for target in targets:
            if not isinstance(target, str) or not target:
                raise ValueError(f"invalid target {target!r}")
        return cls(
            source=source,
            targets=[{ADDRESS_LABEL: t} for t in targets],
            # null label values are unset labels
            labels={str(k): "" if v is None else str(v) for k, v in labels.items()},
        )

    def label_sets(self) -> list[LabelSet]:
        """Targets with the group labels merged in, host labels winning."""
        return [merge_group_labels(target, self.labels) for target in self.targets]

    def to_dict(self) -> dict[str, Any]:
        return {
            "targets": [t.get(ADDRESS_LABEL, "") for t in self.targets],
            "labels": dict(self.labels),
        }
