"""
Configuration management subsystem for collabxp.

- **config.py**: static configuration from environment variables
- **manager.py**: tunable configuration from YAML defaults plus overrides

Static vs Tunable Configuration
-------------------------------
``Config`` holds process settings (database URL, log level, directories)
that require a restart to change. ``ConfigManager`` holds engine balance
values (level thresholds, XP values, streak timezone) read through
dot-notation paths such as ``"progression.xp_values.DAILY_LOGIN"``.
"""

from collabxp.core.config.config import Config, Environment
from collabxp.core.config.manager import (
    ConfigManager,
    ConfigManagerError,
    ConfigWriteError,
)

__all__ = [
    "Config",
    "Environment",
    "ConfigManager",
    "ConfigManagerError",
    "ConfigWriteError",
]
