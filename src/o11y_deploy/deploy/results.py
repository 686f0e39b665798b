"""Result types for deployment runs."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class GroupResult:
    """What happened to one target group."""

    name: str
    targets: int = 0
    playbooks: list[str] = field(default_factory=list)
    skipped: bool = False
    success: bool = True
    output: str = ""


@dataclass
class DeployResult:
    """Result of a whole deployment run."""

    groups: list[GroupResult] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def failed_groups(self) -> list[str]:
        return [g.name for g in self.groups if not g.success]

    @property
    def success(self) -> bool:
        """Whether every group was deployed (or skipped) without runner failures."""
        return not self.failed_groups
