"""
Deterministic placement of remote time-log entries on the calendar.

Remote entries only carry a date and a number of minutes. They are laid
out back to back from the configured start hour, in the order they are
processed, and pushed past the lunch window when they run into it.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from ..config import Settings
from ..models import SyncStatus, TimeBlock, TimeLogEntry, TimeLogMeta

TIME_LOG_SOURCE = "TimeLog"

_DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")


def to_date_key(value) -> str:
    """
    Reduce a date, datetime, or date string to its YYYY-MM-DD key.

    Strings that start with a calendar date keep that date regardless of
    any time or offset that follows. Unparseable input gives "".
    """
    if not value:
        return ""
    if isinstance(value, str):
        match = _DATE_PREFIX.match(value)
        if match:
            return match.group(0)
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return ""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return ""


def parse_work_date(value) -> date:
    key = to_date_key(value)
    if key:
        return date.fromisoformat(key)
    return datetime.now(timezone.utc).date()


@dataclass(frozen=True)
class LunchConfig:
    lunch_start_hour: int
    lunch_end_hour: int
    lunch_minutes: int
    morning_minutes: int
    has_lunch: bool


def lunch_config(settings: Settings) -> LunchConfig:
    """
    Derive the lunch break used for placement.

    Without configured hours lunch starts three hours after the start
    hour and lasts one hour. Lunch only applies when it begins after the
    start hour and has a positive length.
    """
    start_hour = settings.start_hour
    lunch_start = settings.lunch_start if settings.lunch_start is not None else start_hour + 3
    lunch_end = settings.lunch_end if settings.lunch_end is not None else lunch_start + 1
    return LunchConfig(
        lunch_start_hour=lunch_start,
        lunch_end_hour=lunch_end,
        lunch_minutes=max(0, (lunch_end - lunch_start) * 60),
        morning_minutes=max(0, (lunch_start - start_hour) * 60),
        has_lunch=lunch_end > lunch_start > start_hour,
    )


def _at_hour(day: date, hour: int) -> datetime:
    return datetime.combine(day, time(0), tzinfo=timezone.utc) + timedelta(hours=hour)


def apply_working_minutes(day_start: datetime, work_minutes: int, lunch: LunchConfig) -> datetime:
    """Absolute time reached after ``work_minutes`` of work, skipping lunch."""
    extra = lunch.lunch_minutes if lunch.has_lunch and work_minutes > lunch.morning_minutes else 0
    return day_start + timedelta(minutes=work_minutes + extra)


def split_segments_for_lunch(
    start: datetime,
    end: datetime,
    lunch_start: Optional[datetime],
    lunch_end: Optional[datetime],
) -> List[Tuple[datetime, datetime]]:
    if lunch_start is None or lunch_end is None or end <= lunch_start or start >= lunch_end:
        return [(start, end)]
    segments = []
    if start < lunch_start:
        segments.append((start, min(end, lunch_start)))
    if end > lunch_end:
        segments.append((max(start, lunch_end), end))
    if not segments:
        segments.append((lunch_end, end))
    return segments


def iso_week(day: date) -> int:
    return day.isocalendar()[1]


@dataclass
class Segment:
    """One candidate block derived from a remote entry."""
    block: TimeBlock
    segment_key: str
    segment_index: int
    minutes: int
    work_date_key: str


def build_segments(
    entry: TimeLogEntry,
    settings: Settings,
    placement_map: Dict[str, int],
    now: datetime,
    source: str = TIME_LOG_SOURCE,
) -> List[Segment]:
    """
    Place a remote entry after the entries already placed on its date.

    ``placement_map`` holds the minutes already used per date key and is
    advanced by this call.

    Args:
        entry: The remote entry
        settings: Provides the start hour and lunch window
        placement_map: Running offsets per date key for this merge run
        now: Timestamp recorded as updated/synced time on the blocks
        source: External source tag for the created blocks

    Returns:
        One segment, or two when the entry runs across lunch
    """
    work_date = parse_work_date(entry.date)
    date_key = to_date_key(entry.date) or work_date.isoformat()

    offset = placement_map.get(date_key, 0)
    placement_map[date_key] = offset + entry.minutes

    lunch = lunch_config(settings)
    day_start = _at_hour(work_date, settings.start_hour)
    absolute_start = apply_working_minutes(day_start, offset, lunch)
    absolute_end = apply_working_minutes(day_start, offset + entry.minutes, lunch)

    lunch_start = _at_hour(work_date, lunch.lunch_start_hour) if lunch.has_lunch else None
    lunch_end = _at_hour(work_date, lunch.lunch_end_hour) if lunch.has_lunch else None
    intervals = split_segments_for_lunch(absolute_start, absolute_end, lunch_start, lunch_end)

    work_item_id = str(entry.work_item_id) if entry.work_item_id not in (None, "") else None
    comment = entry.comment.strip()

    segments = []
    for index, (start, end) in enumerate(intervals):
        minutes = max(0, round((end - start).total_seconds() / 60))
        meta = TimeLogMeta(
            work_date=date_key,
            minutes=minutes,
            created_on=entry.created_on,
            work_item_id=entry.work_item_id,
            project_id=entry.project_id,
            time_type_id=entry.time_type_id,
            time_type_description=entry.time_type_description,
            comment=comment,
            week=iso_week(work_date),
            user_id=entry.user_id or "",
            user_name=entry.user_name,
            segment_index=index,
            segment_count=len(intervals),
            last_synced_at=now,
            remote_time_log_id=entry.time_log_id,
        )
        block = TimeBlock(
            id=f"timelog-{entry.time_log_id}-{index}",
            start=start,
            end=end,
            note=comment,
            work_item=f"Work item #{work_item_id}" if work_item_id else "",
            task_id=work_item_id,
            item_id=work_item_id,
            comments=[],
            external_source=source,
            external_id=entry.time_log_id,
            sync_status=SyncStatus.IMPORTED,
            updated_at=now,
            time_log_meta=meta,
        )
        segments.append(Segment(
            block=block,
            segment_key=f"{entry.time_log_id}:{index}",
            segment_index=index,
            minutes=minutes,
            work_date_key=date_key,
        ))
    return segments
