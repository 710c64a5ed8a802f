"""Configuration package for runtime settings, logging and startup validation."""

from .logging_setup import config_configure_logging
from .settings import AppSettings, SettingsLoadError, config_build_notification_url, config_load_settings

__all__ = [
    "AppSettings",
    "SettingsLoadError",
    "config_build_notification_url",
    "config_configure_logging",
    "config_load_settings",
]
