"""Root test configuration."""

import logging
from typing import List, Sequence

import pytest
import structlog

from o11y_deploy.model.ansible import Inventory, Playbook
from o11y_deploy.runner import RunResult


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


class RecordingRunner:
    """Runner double that records every call and fails the groups it is told to."""

    def __init__(self, fail: Sequence[str] = ()):
        self.fail = set(fail)
        self.calls: List[tuple] = []

    def run(self, group: str, inventory: Inventory, playbooks: Sequence[Playbook]) -> RunResult:
        self.calls.append((group, inventory, list(playbooks)))
        if group in self.fail:
            return RunResult(success=False, output=f"{group} exploded")
        return RunResult(success=True, output="ok")

    @property
    def groups(self) -> List[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def runner():
    return RecordingRunner()
