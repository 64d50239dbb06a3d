"""
Blocksync: calendar time blocks reconciled against a remote time log.

Places time blocks on a calendar around a lunch break without overlaps,
and merges them idempotently with entries from a remote time-logging
service.
"""

__version__ = "0.1.0"

from .config import ConfigManager, Settings, validate_time_log_settings
from .models import FocusRange, MergeReport, MergeResult, SyncStatus, TimeBlock, TimeLogEntry
from .scheduling import place_block
from .storage import StorageManager
from .timelog import TimeLogClient, TimeLogSyncService, merge_time_logs

__all__ = [
    "ConfigManager",
    "Settings",
    "validate_time_log_settings",
    "FocusRange",
    "MergeReport",
    "MergeResult",
    "SyncStatus",
    "TimeBlock",
    "TimeLogEntry",
    "place_block",
    "StorageManager",
    "TimeLogClient",
    "TimeLogSyncService",
    "merge_time_logs",
]
