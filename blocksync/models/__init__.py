"""Data models for Blocksync."""

from .blocks import SyncStatus, TimeBlock, TimeLogMeta
from .timelog import (
    BlockSnapshot,
    Difference,
    DifferenceType,
    EntrySnapshot,
    FocusRange,
    MergeReport,
    MergeResult,
    MergeSummary,
    PushSuggestion,
    TimeLogEntry,
)

__all__ = [
    "SyncStatus",
    "TimeBlock",
    "TimeLogMeta",
    "TimeLogEntry",
    "BlockSnapshot",
    "EntrySnapshot",
    "Difference",
    "DifferenceType",
    "FocusRange",
    "MergeReport",
    "MergeResult",
    "MergeSummary",
    "PushSuggestion",
]
