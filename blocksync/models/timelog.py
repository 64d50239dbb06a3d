"""
Remote time-log models and reconciliation report structures.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .blocks import TimeBlock


class TimeLogEntry(BaseModel):
    """
    A record as returned by the remote time-logging service.

    ``user_name`` is informational only and never used for identity or
    equality.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    time_log_id: Optional[str] = None
    minutes: int = 0
    date: Optional[str] = None
    created_on: Optional[str] = None
    work_item_id: Optional[Any] = None
    project_id: Optional[Any] = None
    time_type_id: Optional[Any] = None
    time_type_description: str = ""
    comment: str = ""
    user_id: Optional[str] = None
    user_name: str = ""

    @field_validator("time_log_id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("minutes", mode="before")
    @classmethod
    def _coerce_minutes(cls, value):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return 0

    @field_validator("time_type_description", "comment", "user_name", mode="before")
    @classmethod
    def _empty_string(cls, value):
        return "" if value is None else str(value)

    @field_validator("user_id", "date", "created_on", mode="before")
    @classmethod
    def _optional_string(cls, value):
        if value is None or value == "":
            return None
        return str(value)

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "TimeLogEntry":
        """Normalize a raw API record."""
        return cls.model_validate(raw)


class DifferenceType(str, Enum):
    FIELD_MISMATCH = "field-mismatch"
    NEEDS_LINK = "needs-link"
    MISSING_REMOTE = "missing-remote"
    DAILY_LIMIT_EXCEEDED = "daily-limit-exceeded"


class BlockSnapshot(BaseModel):
    """Reduced view of a local block used inside difference records."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: Optional[str] = None
    date: str
    minutes: int
    external_id: Optional[str] = None
    task_id: Optional[str] = None
    work_item: Optional[str] = None
    note: str = ""
    segment_index: Optional[int] = None
    segment_count: Optional[int] = None


class EntrySnapshot(BaseModel):
    """Reduced view of a remote entry segment used inside difference records."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    time_log_id: str
    original_time_log_id: Optional[str] = None
    segment_index: Optional[int] = None
    minutes: int
    date: str
    work_item_id: Optional[Any] = None
    time_type_id: Optional[Any] = None
    time_type_description: str = ""
    comment: str = ""
    created_on: str = ""
    project_id: Optional[Any] = None
    user_id: Optional[str] = None


class Difference(BaseModel):
    """One discrepancy found while reconciling."""

    type: DifferenceType
    fields: List[str] = Field(default_factory=list)
    message: str
    local: Optional[BlockSnapshot] = None
    remote: Optional[EntrySnapshot] = None


class MergeSummary(BaseModel):
    downloaded: int = 0
    created: int = 0
    identical: int = 0
    differences: int = 0


class FocusRange(BaseModel):
    """
    Inclusive date window, typically the visible calendar week.
    """

    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


class MergeReport(BaseModel):
    """
    Structured output of a reconciliation run.
    """

    summary: MergeSummary = Field(default_factory=MergeSummary)
    differences: List[Difference] = Field(default_factory=list)
    generated_at: datetime
    lookback_days: int
    recommendation_date: Optional[datetime] = Field(
        None,
        description="Earliest local edit of a remote-sourced block that was never pushed back"
    )
    unsynced_weekly_blocks: List[TimeBlock] = Field(default_factory=list)
    focus_range: Optional[FocusRange] = None
    limit_to_focus_range: bool = False

    def differences_of(self, kind: DifferenceType) -> List[Difference]:
        return [diff for diff in self.differences if diff.type == kind]


class MergeResult(BaseModel):
    blocks: List[TimeBlock]
    report: MergeReport


class PushSuggestion(BaseModel):
    """
    Unsynced local blocks of one day and work item, grouped for publishing.
    """

    id: str
    day: str
    work_item_id: Optional[str] = None
    work_item_title: Optional[str] = None
    minutes: int = 0
    blocks: List[BlockSnapshot] = Field(default_factory=list)
