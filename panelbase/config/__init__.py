"""Configuration for PanelBase"""

from panelbase.config.settings import (
    ConfigError,
    Settings,
    SettingsManager,
    load_settings,
)

__all__ = [
    "ConfigError",
    "Settings",
    "SettingsManager",
    "load_settings",
]
