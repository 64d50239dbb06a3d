"""
Time block models for Blocksync.

This module defines the local calendar block and the remote time-log
metadata attached to blocks that were imported from, or linked to, the
remote time-logging service.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive timestamps as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]


class SyncStatus(str, Enum):
    """Lifecycle marker of a block relative to the remote service."""

    DRAFT = "draft"
    MODIFIED = "modified"
    SYNCED = "synced"
    IMPORTED = "imported"


class TimeLogMeta(BaseModel):
    """
    Remote time-log metadata carried by a block.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    work_date: Optional[str] = Field(
        None,
        description="Work date key (YYYY-MM-DD) of the remote entry"
    )

    minutes: Optional[int] = Field(
        None,
        description="Minutes covered by this segment"
    )

    created_on: Optional[str] = None
    work_item_id: Optional[Any] = None
    project_id: Optional[Any] = None
    time_type_id: Optional[Any] = None
    time_type_description: str = ""
    comment: Optional[str] = None
    week: Optional[int] = None
    user_id: Optional[str] = None
    user_name: str = ""

    segment_index: Optional[int] = Field(
        None,
        description="Position of this segment when a remote entry was split around lunch"
    )

    segment_count: Optional[int] = Field(
        None,
        description="Number of segments the remote entry was split into"
    )

    last_synced_at: Optional[UtcDatetime] = Field(
        None,
        description="When the block was last reconciled against the remote service"
    )

    remote_time_log_id: Optional[str] = None


class TimeBlock(BaseModel):
    """
    A contiguous interval of logged or planned time on the calendar.

    Intervals are half-open: ``[start, end)``.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: str = Field(
        ...,
        description="Locally generated identifier, stable once assigned"
    )

    start: UtcDatetime = Field(..., description="Start of the interval (UTC)")
    end: UtcDatetime = Field(..., description="End of the interval (UTC)")

    note: str = ""

    work_item: Optional[str] = Field(
        None,
        description="Display label of the bound work item"
    )

    task_id: Optional[str] = Field(
        None,
        description="Leaf task the time is logged against"
    )

    item_id: Optional[str] = Field(
        None,
        description="Item shown in the UI, may be the parent of task_id"
    )

    comments: List[str] = Field(default_factory=list)

    external_source: Optional[str] = None
    external_id: Optional[str] = None

    sync_status: SyncStatus = SyncStatus.DRAFT
    updated_at: Optional[UtcDatetime] = None
    time_log_meta: Optional[TimeLogMeta] = None

    @property
    def duration_minutes(self) -> int:
        """Duration rounded to whole minutes."""
        return round((self.end - self.start).total_seconds() / 60)

    @property
    def segment_index(self) -> int:
        if self.time_log_meta and self.time_log_meta.segment_index is not None:
            return self.time_log_meta.segment_index
        return 0

    @property
    def segment_key(self) -> str:
        return f"{self.external_id}:{self.segment_index}"

    def is_from_source(self, source: str) -> bool:
        """True if the block is linked to a record of the given remote source."""
        return self.external_source == source and bool(self.external_id)

    def to_storage(self) -> dict:
        """Serialize with camelCase keys for persistence."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
