"""
Block time adjustment for Blocksync.

Pure functions that keep the block set free of overlaps and free of the
configured lunch window. Candidates are trimmed or split rather than
silently dropped; a function returns None only when nothing of the
candidate survives. Lunch hours are applied to the UTC day of the
block's start.
"""

import logging
from datetime import datetime, time, timedelta, timezone
from typing import List, Optional, Sequence, Tuple

from ..config import Settings
from ..models import SyncStatus, TimeBlock


def lunch_window(day: datetime, settings: Settings) -> Optional[Tuple[datetime, datetime]]:
    """
    Return the ``[lunch_start, lunch_end)`` interval on the day of ``day``.

    Returns None when no lunch is configured.
    """
    if settings.lunch_start is None or settings.lunch_end is None:
        return None
    midnight = datetime.combine(day.astimezone(timezone.utc).date(), time(0), tzinfo=timezone.utc)
    return (
        midnight + timedelta(hours=settings.lunch_start),
        midnight + timedelta(hours=settings.lunch_end),
    )


def _with_interval(block: TimeBlock, start: datetime, end: datetime) -> TimeBlock:
    return block.model_copy(update={"start": start, "end": end})


def is_overlapping_lunch(block: TimeBlock, settings: Settings) -> bool:
    window = lunch_window(block.start, settings)
    if window is None:
        return False
    lunch_start, lunch_end = window
    return block.start < lunch_end and block.end > lunch_start


def trim_lunch_overlap(block: TimeBlock, settings: Settings) -> Optional[TimeBlock]:
    """
    Trim a block so it no longer touches the lunch window.

    A block inside lunch is dropped. A block straddling lunch keeps its
    longer side; on a tie the earlier (morning) side is kept.

    Returns:
        The trimmed block, the block unchanged, or None if nothing remains
    """
    if block.end <= block.start:
        return None
    if not is_overlapping_lunch(block, settings):
        return block

    lunch_start, lunch_end = lunch_window(block.start, settings)
    start, end = block.start, block.end

    if start >= lunch_start and end <= lunch_end:
        return None

    if start < lunch_start and end <= lunch_end:
        end = lunch_start
    elif start >= lunch_start and end > lunch_end:
        start = lunch_end
    else:
        before = lunch_start - start
        after = end - lunch_end
        if before >= after:
            end = lunch_start
        else:
            start = lunch_end

    if end <= start:
        return None
    return _with_interval(block, start, end)


def split_by_lunch(block: TimeBlock, settings: Settings) -> List[TimeBlock]:
    """
    Split a block that fully spans lunch into a morning and an afternoon piece.

    Any other block is returned unchanged as a single-element list; trimming
    partial overlaps is left to ``trim_lunch_overlap``.
    """
    window = lunch_window(block.start, settings)
    if window is None:
        return [block]
    lunch_start, lunch_end = window
    if block.start < lunch_start and block.end > lunch_end:
        return [
            _with_interval(block, block.start, lunch_start),
            _with_interval(block, lunch_end, block.end),
        ]
    return [block]


def has_overlap(blocks: Sequence[TimeBlock], candidate: TimeBlock) -> bool:
    """True if the candidate intersects any block. Touching endpoints do not count."""
    return any(candidate.start < b.end and candidate.end > b.start for b in blocks)


def adjust_for_overlap(blocks: Sequence[TimeBlock], candidate: TimeBlock) -> Optional[TimeBlock]:
    """
    Shrink a candidate until it no longer overlaps existing blocks.

    Existing blocks are visited in ascending start order and each one is
    checked against the already-shrunk interval.

    Returns:
        The adjusted candidate, or None when existing blocks consume it
    """
    start, end = candidate.start, candidate.end
    if end <= start:
        return None

    for existing in sorted(blocks, key=lambda b: b.start):
        if end > existing.start and start < existing.end:
            if start < existing.start:
                end = min(end, existing.start)
            else:
                start = max(start, existing.end)
        if end <= start:
            return None

    if start == candidate.start and end == candidate.end:
        return candidate
    return _with_interval(candidate, start, end)


def place_block(
    blocks: Sequence[TimeBlock],
    candidate: TimeBlock,
    settings: Settings,
    now: Optional[datetime] = None,
) -> Tuple[List[TimeBlock], List[TimeBlock]]:
    """
    Add a candidate to the calendar honouring lunch and overlap rules.

    The candidate is split around lunch, each piece is shrunk against the
    blocks committed so far (including pieces accepted earlier in this
    call), and a final lunch trim is applied. The input sequence is not
    modified.

    Args:
        blocks: Blocks already on the calendar
        candidate: The block the user wants to add
        settings: Settings providing the lunch window
        now: Timestamp recorded as ``updated_at`` on accepted pieces

    Returns:
        Tuple of (new block list, accepted pieces)
    """
    now = now or datetime.now(timezone.utc)
    committed = list(blocks)
    accepted: List[TimeBlock] = []

    pieces = split_by_lunch(candidate, settings)
    for piece in pieces:
        adjusted = adjust_for_overlap(committed, piece)
        if adjusted is None:
            continue
        trimmed = trim_lunch_overlap(adjusted, settings)
        if trimmed is None:
            continue

        # the first surviving piece keeps the candidate's id
        update = {"updated_at": now}
        if accepted:
            update["id"] = f"{candidate.id}-{len(accepted)}"
        if not trimmed.external_source:
            update["sync_status"] = SyncStatus.DRAFT
        trimmed = trimmed.model_copy(update=update)

        committed = committed + [trimmed]
        accepted.append(trimmed)

    if not accepted:
        logging.info(f"Block {candidate.id} fully consumed by existing blocks or lunch")
    return committed, accepted


def move_block(
    blocks: Sequence[TimeBlock],
    block_id: str,
    new_start: datetime,
    new_end: datetime,
    settings: Settings,
    now: Optional[datetime] = None,
) -> Tuple[List[TimeBlock], Optional[TimeBlock]]:
    """
    Move or resize a block, re-applying the overlap and lunch rules.

    Only the first surviving piece is kept so a moved block keeps its id.
    Blocks linked to a remote record are marked ``modified``.

    Returns:
        Tuple of (new block list, moved block or None if it was consumed)

    Raises:
        KeyError: If no block has the given id
    """
    now = now or datetime.now(timezone.utc)
    target = next((b for b in blocks if b.id == block_id), None)
    if target is None:
        raise KeyError(block_id)

    others = [b for b in blocks if b.id != block_id]
    moved = _with_interval(target, new_start, new_end)

    result: Optional[TimeBlock] = None
    for piece in split_by_lunch(moved, settings):
        adjusted = adjust_for_overlap(others, piece)
        trimmed = trim_lunch_overlap(adjusted, settings) if adjusted else None
        if trimmed is not None:
            result = trimmed
            break

    if result is None:
        return others, None

    status = SyncStatus.MODIFIED if result.external_source else result.sync_status
    result = result.model_copy(update={"updated_at": now, "sync_status": status})
    ordered = [result if b.id == block_id else b for b in blocks]
    return ordered, result


def add_comment(block: TimeBlock, text: str, now: Optional[datetime] = None) -> TimeBlock:
    """Append a dropped comment to a block, returning the updated copy."""
    text = (text or "").strip()
    if not text:
        return block
    status = SyncStatus.MODIFIED if block.external_source else block.sync_status
    return block.model_copy(update={
        "comments": block.comments + [text],
        "updated_at": now or datetime.now(timezone.utc),
        "sync_status": status,
    })
