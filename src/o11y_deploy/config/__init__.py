"""Process settings and the deployment document."""

from o11y_deploy.config.loader import config_to_dict, dump_config, load_config, parse_config
from o11y_deploy.config.models import Config, GlobalConfig, TargetGroupConfig, Targets
from o11y_deploy.config.settings import Settings, get_settings

__all__ = [
    "Config",
    "GlobalConfig",
    "Settings",
    "TargetGroupConfig",
    "Targets",
    "config_to_dict",
    "dump_config",
    "get_settings",
    "load_config",
    "parse_config",
]
