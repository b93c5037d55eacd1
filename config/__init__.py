# Configuration module for the location ping service
from .settings import (
    Settings,
    Environment,
    ConfigurationError,
    get_settings,
    clear_settings_cache,
    validate_startup,
)

__all__ = [
    "Settings",
    "Environment",
    "ConfigurationError",
    "get_settings",
    "clear_settings_cache",
    "validate_startup",
]
