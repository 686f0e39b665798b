"""Core definitions shared by every o11y-deploy package."""

from o11y_deploy.core.errors import (
    ConfigurationError,
    DiscoveryError,
    ExitCode,
    ModuleError,
    O11yDeployError,
    RegistrationError,
    RelabelError,
    RunnerError,
    UnregisteredModuleError,
    main_with_error_handling,
)

__all__ = [
    "ExitCode",
    "O11yDeployError",
    "ConfigurationError",
    "UnregisteredModuleError",
    "DiscoveryError",
    "RelabelError",
    "ModuleError",
    "RunnerError",
    "RegistrationError",
    "main_with_error_handling",
]
