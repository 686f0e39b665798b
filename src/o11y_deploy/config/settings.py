"""
Process settings using Pydantic.

Provides environment-based configuration loading with O11Y_DEPLOY_ prefix.
These settings describe the machine running the deployer; the deployment
itself is described by the YAML document handled in loader.py.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="O11Y_DEPLOY_",
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Runner
    deps_home: Path = Path("~/.o11y-deploy/deps").expanduser()
    ansible_playbook: Path | None = None
    runner_debug: bool = False

    def ansible_playbook_path(self) -> Path:
        """Explicit ansible-playbook binary, or the one installed in deps_home."""
        if self.ansible_playbook is not None:
            return self.ansible_playbook
        return self.deps_home / "bin" / "ansible-playbook"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
