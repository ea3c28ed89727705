"""Settings, per-user config file and logging setup."""

from .settings import Settings, settings
from .user_config import UserConfig
from .logging_setup import configure_logging

__all__ = ["Settings", "settings", "UserConfig", "configure_logging"]
