"""
Configuration subsystem for Arena.

- **config.py**: static infrastructure settings from environment variables
- **manager.py**: gameplay tunables from ``config/*.yaml`` with runtime overrides
"""

from .config import Config, Environment
from .manager import ConfigManager, ConfigManagerError, ConfigWriteError

__all__ = [
    "Config",
    "Environment",
    "ConfigManager",
    "ConfigManagerError",
    "ConfigWriteError",
]
