"""
Core Logic Layer.

This package contains the sync orchestration between the remote store and the
local cache, connectivity tracking, and the editing and study workflows.
"""

from .connectivity import ConnectivityState, ConnectivityWatcher
from .editor import (
    edit_details,
    find_card,
    new_card,
    prepare_set,
    remove_card,
    update_card,
)
from .study import StudySession
from .sync import SourceReport, SyncOrchestrator

__all__ = [
    "ConnectivityState",
    "ConnectivityWatcher",
    "SourceReport",
    "StudySession",
    "SyncOrchestrator",
    "edit_details",
    "find_card",
    "new_card",
    "prepare_set",
    "remove_card",
    "update_card",
]
