"""Configuration management."""

from .config_manager import ConfigManager, config_manager
from .config_models import GateSettings, SecurityPolicy

__all__ = ["ConfigManager", "GateSettings", "SecurityPolicy", "config_manager"]
