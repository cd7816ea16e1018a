"""Configuration model and loader for ovrlrd."""

from ovrlrd.config.models import BridgeConfig
from ovrlrd.config.parser import ConfigError, load_config

__all__ = [
    "BridgeConfig",
    "ConfigError",
    "load_config",
]
