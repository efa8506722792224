"""Configuration: environment-driven settings and backend selection."""

from .settings import ENV_PREFIX, CoastlineSettings, clear_settings_cache, get_settings

__all__ = [
    "ENV_PREFIX",
    "CoastlineSettings",
    "clear_settings_cache",
    "get_settings",
]
