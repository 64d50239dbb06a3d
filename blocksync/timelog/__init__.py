"""Remote time-log integration: fetching, reconciliation and publishing."""

from .client import TimeLogClient
from .errors import AuthorizationError, ConfigurationError, TimeLogError, TimeLogRequestError
from .merge import DAILY_LIMIT_MINUTES, merge_time_logs
from .placement import TIME_LOG_SOURCE, build_segments
from .report import build_push_suggestions, build_time_log_payload, differences_to_csv
from .retry import RetryPolicy, send_with_retries
from .service import TimeLogSyncService

__all__ = [
    "TimeLogClient",
    "TimeLogSyncService",
    "TimeLogError",
    "ConfigurationError",
    "AuthorizationError",
    "TimeLogRequestError",
    "DAILY_LIMIT_MINUTES",
    "TIME_LOG_SOURCE",
    "merge_time_logs",
    "build_segments",
    "build_push_suggestions",
    "build_time_log_payload",
    "differences_to_csv",
    "RetryPolicy",
    "send_with_retries",
]
