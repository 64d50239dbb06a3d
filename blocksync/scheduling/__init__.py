"""Calendar placement rules and summaries."""

from .adjust import (
    add_comment,
    adjust_for_overlap,
    has_overlap,
    is_overlapping_lunch,
    lunch_window,
    move_block,
    place_block,
    split_by_lunch,
    trim_lunch_overlap,
)
from .summary import block_date_key, block_minutes, daily_totals, summarize_by_area

__all__ = [
    "add_comment",
    "adjust_for_overlap",
    "has_overlap",
    "is_overlapping_lunch",
    "lunch_window",
    "move_block",
    "place_block",
    "split_by_lunch",
    "trim_lunch_overlap",
    "block_date_key",
    "block_minutes",
    "daily_totals",
    "summarize_by_area",
]
