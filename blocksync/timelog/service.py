"""
Time-log synchronization service.

Validates the connection settings, fetches the remote window and merges
it into the local blocks. One sync is expected to run at a time; callers
serialize invocations.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, List, Optional, Sequence

from ..config import Settings, validate_time_log_settings
from ..models import FocusRange, MergeResult, PushSuggestion, TimeBlock
from .client import TimeLogClient
from .errors import ConfigurationError
from .merge import merge_time_logs
from .placement import TIME_LOG_SOURCE
from .report import build_time_log_payload

ClientFactory = Callable[[Settings], TimeLogClient]


def _start_of_day(day: date) -> datetime:
    return datetime.combine(day, time(0), tzinfo=timezone.utc)


class TimeLogSyncService:
    """
    Runs time-log synchronization and publishing against a client built per run.
    """

    def __init__(
        self,
        client_factory: Optional[ClientFactory] = None,
        source: str = TIME_LOG_SOURCE,
    ):
        """
        Initialize the sync service.

        Args:
            client_factory: Builds a TimeLogClient from settings (defaults to TimeLogClient.from_settings)
            source: External source tag used for imported blocks
        """
        self.client_factory = client_factory or TimeLogClient.from_settings
        self.source = source

    def _require_valid(self, settings: Settings) -> None:
        validation = validate_time_log_settings(settings)
        if not validation.valid:
            for field_name, message in validation.errors.items():
                logging.error(f"Invalid TimeLog setting {field_name}: {message}")
            raise ConfigurationError(validation.errors)

    def query_window(
        self,
        settings: Settings,
        now: datetime,
        focus_range: Optional[FocusRange] = None,
        limit_to_focus_range: bool = False,
        from_date: Optional[datetime] = None,
    ):
        """
        Date window to request from the service.

        An explicit ``from_date`` (full refresh) wins, then the focus range
        when the run is limited to it, then the configured lookback.
        """
        if from_date is not None:
            return from_date, None
        if limit_to_focus_range and focus_range is not None:
            return _start_of_day(focus_range.start), _start_of_day(focus_range.end + timedelta(days=1))
        return now - timedelta(days=settings.lookback_days), None

    def sync(
        self,
        settings: Settings,
        blocks: Sequence[TimeBlock],
        now: Optional[datetime] = None,
        last_sync_date: Optional[datetime] = None,
        focus_range: Optional[FocusRange] = None,
        limit_to_focus_range: bool = False,
        from_date: Optional[datetime] = None,
    ) -> MergeResult:
        """
        Fetch remote entries and merge them into ``blocks``.

        Raises:
            ConfigurationError: If the settings are incomplete (no request is made)
            AuthorizationError: If the service rejects the credentials
            TimeLogRequestError: If a page cannot be fetched
        """
        self._require_valid(settings)
        now = now or datetime.now(timezone.utc)
        window_start, window_end = self.query_window(
            settings, now, focus_range, limit_to_focus_range, from_date
        )
        logging.info(f"Starting TimeLog sync from {window_start} to {window_end or 'now'}")

        with self.client_factory(settings) as client:
            entries = client.fetch_entries(from_date=window_start, to_date=window_end)

        return merge_time_logs(
            blocks,
            entries,
            settings=settings,
            last_sync_date=last_sync_date,
            focus_range=focus_range,
            limit_to_focus_range=limit_to_focus_range,
            source=self.source,
            now=now,
        )

    def publish(self, settings: Settings, suggestions: Sequence[PushSuggestion]) -> List[Any]:
        """
        Create one remote entry per suggestion.

        Stops at the first failure; entries created before it stay created.

        Returns:
            The service responses, in suggestion order
        """
        self._require_valid(settings)
        responses = []
        with self.client_factory(settings) as client:
            for suggestion in suggestions:
                payload = build_time_log_payload(suggestion, settings)
                responses.append(client.create_entry(payload))
                logging.info(f"Published {suggestion.minutes} minutes for {suggestion.id}")
        return responses
