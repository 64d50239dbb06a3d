"""
Helpers around the merge report: CSV export and publishing suggestions.
"""

import csv
import io
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..config import Settings
from ..models import Difference, PushSuggestion, TimeBlock
from ..scheduling.summary import block_date_key
from .merge import snapshot_block
from .placement import TIME_LOG_SOURCE

CSV_HEADERS = [
    "type",
    "fields",
    "localDate",
    "localMinutes",
    "localExternalId",
    "remoteDate",
    "remoteMinutes",
    "remoteId",
    "message",
]

DEFAULT_TIME_TYPE = "WORK_TIME"


def _cell(value: Any) -> str:
    return "" if value is None else str(value)


def differences_to_csv(differences: Sequence[Difference]) -> str:
    """
    Render report differences as CSV with every cell quoted.

    Returns an empty string when there is nothing to export.
    """
    if not differences:
        return ""

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for diff in differences:
        local = diff.local
        remote = diff.remote
        writer.writerow([
            diff.type.value,
            ";".join(diff.fields),
            _cell(local.date if local else None),
            _cell(local.minutes if local else None),
            _cell(local.external_id if local else None),
            _cell(remote.date if remote else None),
            _cell(remote.minutes if remote else None),
            _cell(remote.time_log_id if remote else None),
            _cell(diff.message),
        ])
    return buffer.getvalue().rstrip("\n")


def build_push_suggestions(
    blocks: Iterable[TimeBlock],
    source: str = TIME_LOG_SOURCE,
) -> List[PushSuggestion]:
    """
    Group blocks that still need publishing by day and work item.

    Typically fed with ``report.unsynced_weekly_blocks``. Blocks already
    linked to a remote entry are left out, since creating them again would
    duplicate the entry. Groups are ordered by day, then by work item.
    """
    groups: Dict[str, PushSuggestion] = {}
    for block in blocks:
        if block.is_from_source(source):
            continue
        day = block_date_key(block)
        work_item_id = block.task_id or block.item_id
        key = f"{day}:{work_item_id or 'unassigned'}"
        suggestion = groups.get(key)
        if suggestion is None:
            suggestion = PushSuggestion(
                id=key,
                day=day,
                work_item_id=work_item_id,
                work_item_title=block.work_item or None,
            )
            groups[key] = suggestion
        snapshot = snapshot_block(block)
        suggestion.blocks.append(snapshot)
        suggestion.minutes += snapshot.minutes

    return sorted(groups.values(), key=lambda s: (s.day, s.work_item_id or ""))


def build_time_log_payload(
    suggestion: PushSuggestion,
    settings: Settings,
    time_type_description: Optional[str] = None,
) -> Dict[str, Any]:
    """Create-endpoint body for one suggestion."""
    notes = [b.note.strip() for b in suggestion.blocks if b.note and b.note.strip()]
    payload: Dict[str, Any] = {
        "comment": "; ".join(notes),
        "minutes": suggestion.minutes,
        "timeTypeDescription": time_type_description or DEFAULT_TIME_TYPE,
        "date": suggestion.day,
        "userId": settings.time_log_user_id,
        "userName": settings.time_log_user_name,
        "projectId": settings.time_log_project_id,
    }
    if suggestion.work_item_id:
        payload["workItemId"] = suggestion.work_item_id
    return payload
