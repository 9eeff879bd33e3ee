"""
Storage Layer.

This package handles all data persistence: the package cache directory and
the configuration file.
"""

from .cache import LocalCache
from .config_manager import ConfigManager

__all__ = ["ConfigManager", "LocalCache"]
