"""Configuration module for the form-fill service."""
from config.models import (
    AppConfig,
    AutomationSettings,
    ServerConfig,
    load_config,
)
from config.store import SettingsStore

__all__ = [
    "AppConfig",
    "AutomationSettings",
    "ServerConfig",
    "SettingsStore",
    "load_config",
]
