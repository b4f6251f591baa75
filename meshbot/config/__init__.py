"""Configuration module for meshbot."""

from meshbot.config.loader import get_config_path, load_config, save_config
from meshbot.config.schema import Config

__all__ = ["Config", "load_config", "save_config", "get_config_path"]
