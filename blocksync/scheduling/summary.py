"""
Duration summaries over time blocks.
"""

from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Dict, Iterable, Mapping, Optional

from ..models import TimeBlock

UNASSIGNED_AREA = "Unassigned"


def block_minutes(block: TimeBlock) -> int:
    return block.duration_minutes


def block_date_key(block: TimeBlock) -> str:
    """
    Day a block counts towards, as YYYY-MM-DD.

    Imported blocks keep the work date of their remote entry; other blocks
    use the UTC day of their start.
    """
    if block.time_log_meta and block.time_log_meta.work_date:
        return block.time_log_meta.work_date
    return block.start.astimezone(timezone.utc).date().isoformat()


def daily_totals(blocks: Iterable[TimeBlock]) -> Dict[str, int]:
    """Total minutes per day key."""
    totals: Dict[str, int] = defaultdict(int)
    for block in blocks:
        totals[block_date_key(block)] += block_minutes(block)
    return dict(totals)


def summarize_by_area(
    blocks: Iterable[TimeBlock],
    item_areas: Mapping[str, Optional[str]],
    day: date,
) -> Dict[str, float]:
    """
    Hours per area for one day.

    Args:
        blocks: Blocks to summarize
        item_areas: Mapping of work item id to its area label
        day: The day to summarize

    Returns:
        Dictionary of area label to hours
    """
    if isinstance(day, datetime):
        day = day.date()
    summary: Dict[str, float] = defaultdict(float)
    for block in blocks:
        if block.start.astimezone(timezone.utc).date() != day:
            continue
        item_id = block.item_id or block.task_id
        area = item_areas.get(item_id) if item_id else None
        summary[area or UNASSIGNED_AREA] += (block.end - block.start).total_seconds() / 3600
    return dict(summary)
