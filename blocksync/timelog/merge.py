"""
Reconciliation of local time blocks against remote time-log entries.

``merge_time_logs`` is idempotent: merging the same remote entries into
its own output creates nothing and reports the same differences. It
never deletes user data; discrepancies are reported instead. The one
exception is an imported single-segment block whose remote entry now
spans lunch, which is replaced by the new segments.
"""

import logging
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Sequence, Set

from ..config import Settings
from ..models import (
    BlockSnapshot,
    Difference,
    DifferenceType,
    EntrySnapshot,
    FocusRange,
    MergeReport,
    MergeResult,
    MergeSummary,
    SyncStatus,
    TimeBlock,
    TimeLogEntry,
    TimeLogMeta,
)
from ..models.blocks import ensure_utc
from ..scheduling.summary import block_date_key, block_minutes, daily_totals
from .placement import TIME_LOG_SOURCE, Segment, build_segments, to_date_key

DAILY_LIMIT_MINUTES = 480

NEEDS_LINK_MESSAGE = (
    "Remote entry resembles a local manual entry. Link manually or adjust the block."
)
MISSING_REMOTE_MESSAGE = (
    "Local TimeLog entry was not returned by the remote API in the current window."
)
DAILY_LIMIT_MESSAGE = (
    "Importing this remote entry would exceed the daily limit of {limit} minutes; it was skipped."
)


def _comparable_type(time_type_id, time_type_description) -> str:
    return str(time_type_id or time_type_description or "").lower()


def compare_block_to_entry(block: TimeBlock, entry: TimeLogEntry) -> List[str]:
    """
    Names of the fields where a linked block disagrees with its remote segment.

    Compared: minutes, date, workItemId, timeType, comment. The remote
    user name is never compared.
    """
    fields = []
    meta = block.time_log_meta

    if block_minutes(block) != entry.minutes:
        fields.append("minutes")

    if block_date_key(block) != to_date_key(entry.date):
        fields.append("date")

    local_item = block.task_id or block.item_id or None
    remote_item = str(entry.work_item_id) if entry.work_item_id not in (None, "") else None
    if (local_item or remote_item) and (str(local_item) if local_item else None) != remote_item:
        fields.append("workItemId")

    local_type = _comparable_type(
        meta.time_type_id if meta else None,
        meta.time_type_description if meta else None,
    )
    remote_type = _comparable_type(entry.time_type_id, entry.time_type_description)
    if local_type != remote_type:
        fields.append("timeType")

    local_comment = ((meta.comment if meta else None) or block.note or "").strip()
    if local_comment != (entry.comment or "").strip():
        fields.append("comment")

    return fields


def heuristic_match(
    entry: TimeLogEntry,
    blocks: Sequence[TimeBlock],
    source: str = TIME_LOG_SOURCE,
) -> Optional[TimeBlock]:
    """
    Find an unlinked local block that looks like the remote segment.

    A block matches on the same day and duration plus either the same work
    item or the same time type.
    """
    date_key = to_date_key(entry.date)
    remote_item = str(entry.work_item_id) if entry.work_item_id not in (None, "") else None
    remote_type = _comparable_type(entry.time_type_id, entry.time_type_description)

    for block in blocks:
        if block.is_from_source(source):
            continue
        if block_date_key(block) != date_key:
            continue
        if block_minutes(block) != entry.minutes:
            continue
        block_item = block.task_id or block.item_id
        if remote_item and block_item and str(block_item) == remote_item:
            return block
        meta = block.time_log_meta
        block_type = _comparable_type(
            meta.time_type_id if meta else None,
            meta.time_type_description if meta else None,
        )
        if remote_type and block_type and block_type == remote_type:
            return block
    return None


def snapshot_block(block: TimeBlock) -> BlockSnapshot:
    meta = block.time_log_meta
    return BlockSnapshot(
        id=block.id,
        date=block_date_key(block),
        minutes=block_minutes(block),
        external_id=block.external_id,
        task_id=block.task_id,
        work_item=block.work_item,
        note=block.note or "",
        segment_index=meta.segment_index if meta else None,
        segment_count=meta.segment_count if meta else None,
    )


def snapshot_entry(entry: TimeLogEntry, segment: Segment) -> EntrySnapshot:
    return EntrySnapshot(
        time_log_id=segment.segment_key,
        original_time_log_id=entry.time_log_id,
        segment_index=segment.segment_index,
        minutes=segment.minutes,
        date=segment.work_date_key,
        work_item_id=entry.work_item_id,
        time_type_id=entry.time_type_id,
        time_type_description=entry.time_type_description,
        comment=entry.comment,
        created_on=entry.created_on or "",
        project_id=entry.project_id,
        user_id=entry.user_id,
    )


def build_difference_message(fields: List[str]) -> str:
    if not fields:
        return "Differences detected"
    return f"Differences detected for: {', '.join(fields)}"


def _in_focus(block: TimeBlock, focus_range: Optional[FocusRange]) -> bool:
    if focus_range is None:
        return False
    return focus_range.contains(date.fromisoformat(block_date_key(block)))


def _latest_touch(block: TimeBlock) -> Optional[datetime]:
    meta = block.time_log_meta
    stamps = [s for s in (block.updated_at, meta.last_synced_at if meta else None) if s]
    return max(stamps) if stamps else None


def _edited_since_sync(block: TimeBlock) -> bool:
    if block.updated_at is None:
        return False
    meta = block.time_log_meta
    last_synced = meta.last_synced_at if meta else None
    return last_synced is None or block.updated_at > last_synced


def _single_segment(block: TimeBlock) -> bool:
    """True if the block was imported while its entry fitted in one segment."""
    meta = block.time_log_meta
    return meta is None or meta.segment_count in (None, 1)


def _attention_key(block: TimeBlock, source: str) -> str:
    return block.segment_key if block.is_from_source(source) else block.id


def merge_time_logs(
    blocks: Sequence[TimeBlock],
    remote_entries: Sequence[TimeLogEntry],
    settings: Optional[Settings] = None,
    last_sync_date: Optional[datetime] = None,
    focus_range: Optional[FocusRange] = None,
    limit_to_focus_range: bool = False,
    source: str = TIME_LOG_SOURCE,
    now: Optional[datetime] = None,
) -> MergeResult:
    """
    Merge remote time-log entries into the local block list.

    Each remote segment is matched, in this order of precedence, by
    external id and segment index, then heuristically against unlinked
    blocks, and otherwise created unless that would push the day past
    the daily limit.

    Args:
        blocks: Local blocks; copied, never mutated
        remote_entries: Normalized remote entries, processed in the given order
        settings: Start hour and lunch window used for placement
        last_sync_date: When the previous sync ran, if known
        focus_range: Window (usually the visible week) for the attention list
        limit_to_focus_range: Only report missing-remote blocks inside the focus range
        source: External source tag of remote-linked blocks
        now: Timestamp used for sync bookkeeping

    Returns:
        MergeResult with the new block list and the report
    """
    settings = settings or Settings()
    now = now or datetime.now(timezone.utc)
    last_sync_date = ensure_utc(last_sync_date)

    updated: List[TimeBlock] = [block.model_copy(deep=True) for block in blocks]
    summary = MergeSummary(downloaded=len(remote_entries))
    differences: List[Difference] = []

    local_by_external_id: Dict[str, List[TimeBlock]] = {}
    for block in updated:
        if block.is_from_source(source):
            local_by_external_id.setdefault(block.external_id, []).append(block)

    totals = daily_totals(updated)
    placement_map: Dict[str, int] = {}
    tracked_segments: Set[str] = set()
    processed_ids: Set[str] = set()

    for entry in remote_entries:
        if not entry.time_log_id or entry.time_log_id in processed_ids:
            continue
        processed_ids.add(entry.time_log_id)
        if entry.minutes <= 0:
            continue

        segments = build_segments(entry, settings, placement_map, now, source=source)
        locals_for_entry = list(local_by_external_id.get(entry.time_log_id, []))

        if len(segments) > 1 and len(locals_for_entry) == 1 and _single_segment(locals_for_entry[0]):
            stale = locals_for_entry.pop()
            updated = [b for b in updated if b is not stale]
            stale_key = block_date_key(stale)
            totals[stale_key] = totals.get(stale_key, 0) - block_minutes(stale)
            logging.info(f"Replacing single block {stale.id} with {len(segments)} segments")

        for segment in segments:
            local = next(
                (b for b in locals_for_entry if b.segment_index == segment.segment_index),
                None,
            )
            if local is not None:
                locals_for_entry.remove(local)
            tracked_segments.add(segment.segment_key)

            segment_entry = entry.model_copy(update={
                "minutes": segment.minutes,
                "date": segment.work_date_key,
            })

            if local is not None:
                fields = compare_block_to_entry(local, segment_entry)
                if not fields:
                    summary.identical += 1
                else:
                    differences.append(Difference(
                        type=DifferenceType.FIELD_MISMATCH,
                        fields=fields,
                        message=build_difference_message(fields),
                        local=snapshot_block(local),
                        remote=snapshot_entry(entry, segment),
                    ))
                local.sync_status = SyncStatus.SYNCED
                if local.time_log_meta is None:
                    local.time_log_meta = TimeLogMeta(segment_index=segment.segment_index)
                local.time_log_meta.last_synced_at = now
                continue

            candidate = heuristic_match(segment_entry, updated, source=source)
            if candidate is not None:
                differences.append(Difference(
                    type=DifferenceType.NEEDS_LINK,
                    fields=["externalId"],
                    message=NEEDS_LINK_MESSAGE,
                    local=snapshot_block(candidate),
                    remote=snapshot_entry(entry, segment),
                ))
                continue

            running_total = totals.get(segment.work_date_key, 0)
            if running_total + segment.minutes > DAILY_LIMIT_MINUTES:
                logging.warning(
                    f"Skipping TimeLog segment {segment.segment_key}: "
                    f"{running_total} + {segment.minutes} minutes exceeds the daily limit "
                    f"on {segment.work_date_key}"
                )
                differences.append(Difference(
                    type=DifferenceType.DAILY_LIMIT_EXCEEDED,
                    fields=["minutes"],
                    message=DAILY_LIMIT_MESSAGE.format(limit=DAILY_LIMIT_MINUTES),
                    local=BlockSnapshot(date=segment.work_date_key, minutes=running_total),
                    remote=snapshot_entry(entry, segment),
                ))
                continue

            updated.append(segment.block)
            totals[segment.work_date_key] = running_total + segment.minutes
            summary.created += 1

    unsynced_weekly: List[TimeBlock] = []
    attention_keys: Set[str] = set()

    def flag_for_attention(block: TimeBlock) -> None:
        key = _attention_key(block, source)
        if key not in attention_keys:
            attention_keys.add(key)
            unsynced_weekly.append(block)

    for block in updated:
        if not block.is_from_source(source) or block.segment_key in tracked_segments:
            continue
        if last_sync_date is not None:
            touched = _latest_touch(block)
            if touched is None or touched <= last_sync_date:
                continue
        in_focus = _in_focus(block, focus_range)
        if limit_to_focus_range and focus_range is not None and not in_focus:
            continue
        differences.append(Difference(
            type=DifferenceType.MISSING_REMOTE,
            fields=["missing"],
            message=MISSING_REMOTE_MESSAGE,
            local=snapshot_block(block),
            remote=None,
        ))
        if in_focus:
            flag_for_attention(block)

    recommendation_date = None
    if last_sync_date is not None:
        stale = [
            block.updated_at
            for block in blocks
            if block.is_from_source(source) and _edited_since_sync(block)
        ]
        recommendation_date = min(stale) if stale else None

    if focus_range is not None:
        for block in updated:
            if not _in_focus(block, focus_range):
                continue
            if (
                not block.is_from_source(source)
                or _edited_since_sync(block)
                or block.sync_status != SyncStatus.SYNCED
            ):
                flag_for_attention(block)

    summary.differences = len(differences)
    logging.info(
        f"TimeLog merge: {summary.downloaded} downloaded, {summary.created} created, "
        f"{summary.identical} identical, {summary.differences} differences"
    )

    report = MergeReport(
        summary=summary,
        differences=differences,
        generated_at=now,
        lookback_days=settings.lookback_days,
        recommendation_date=recommendation_date,
        unsynced_weekly_blocks=unsynced_weekly,
        focus_range=focus_range,
        limit_to_focus_range=limit_to_focus_range,
    )
    return MergeResult(blocks=updated, report=report)
