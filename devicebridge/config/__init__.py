"""Configuration module for devicebridge."""

from devicebridge.config.loader import load_config, get_config_path, save_config
from devicebridge.config.schema import BridgeConfig
from devicebridge.config.access import get_config, clear_config_cache

__all__ = ["BridgeConfig", "load_config", "save_config", "get_config_path", "get_config", "clear_config_cache"]
