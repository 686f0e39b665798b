"""
Unified error handling for o11y-deploy.

Every failure the deployment pipeline reports to an operator is one of the
classes below. Each carries the exit code the CLI returns for it.

Exit Codes:
- 0: Success
- 10: Configuration error (malformed document, unknown module key, ...)
- 11: Discovery error (a backend could not be started)
- 12: Module error (target projection or artifact generation failed)
- 13: Runner error (the provisioning runner failed for a group)
- 127: Unknown/internal error
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import IntEnum
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Standardized exit codes for CLI commands."""

    SUCCESS = 0
    CONFIG_ERROR = 10
    DISCOVERY_ERROR = 11
    MODULE_ERROR = 12
    RUNNER_ERROR = 13
    UNKNOWN_ERROR = 127


class O11yDeployError(Exception):
    """Base exception for o11y-deploy errors with exit code support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(O11yDeployError):
    """Raised for configuration-related errors."""

    exit_code = ExitCode.CONFIG_ERROR


class UnregisteredModuleError(ConfigurationError):
    """Raised when a module key or config type has no registered module."""


class DiscoveryError(O11yDeployError):
    """Raised when a discovery backend cannot be created or started."""

    exit_code = ExitCode.DISCOVERY_ERROR


class RelabelError(ConfigurationError):
    """Raised for invalid relabeling rules."""


class ModuleError(O11yDeployError):
    """Raised when a module fails to project targets or build its artifact."""

    exit_code = ExitCode.MODULE_ERROR

    def __init__(
        self,
        message: str,
        *,
        module: str | None = None,
        group: str | None = None,
        phase: str | None = None,
    ):
        details = {k: v for k, v in (("module", module), ("group", group), ("phase", phase)) if v}
        super().__init__(message, details)
        self.module = module
        self.group = group
        self.phase = phase


class RunnerError(O11yDeployError):
    """Raised when the provisioning runner failed for one or more groups.

    ``result`` carries the DeployResult of the run when one was produced.
    """

    exit_code = ExitCode.RUNNER_ERROR

    def __init__(
        self, message: str, failures: dict[str, str] | None = None, result: Any = None
    ):
        self.failures = failures or {}
        self.result = result
        super().__init__(message, {"groups": ",".join(self.failures)} if self.failures else None)


class RegistrationError(RuntimeError):
    """Programming error in module or discovery registration.

    Not an O11yDeployError: it is never the operator's fault and must not be
    turned into a friendly exit code.
    """


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for CLI main functions that provides unified error handling.

    Catches exceptions and converts them to appropriate exit codes with
    consistent error reporting.

    Args:
        show_traceback: If True, show full traceback for unexpected errors
        log_errors: If True, log errors to structlog

    Exit codes:
        - O11yDeployError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130 (standard for SIGINT)
        - Other exceptions: Returns 127 (unknown error)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except O11yDeployError as e:
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=type(e).__name__,
                        message=e.message,
                        exit_code=e.exit_code,
                        **e.details,
                    )
                if e.show_traceback or show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return 130  # Standard exit code for SIGINT
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=ExitCode.UNKNOWN_ERROR,
                    )
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator
