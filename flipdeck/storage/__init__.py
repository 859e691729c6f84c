"""
Storage Layer.

This package handles all local persistence: the configuration file and the
JSON cache slots that keep flashcard sets available offline.
"""

from .cache import BACKUP_SLOT, OFFLINE_SLOT, LocalCacheStore
from .config_manager import ConfigManager

__all__ = ["BACKUP_SLOT", "OFFLINE_SLOT", "ConfigManager", "LocalCacheStore"]
