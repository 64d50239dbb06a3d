"""
HTTP client for the remote time-logging service.

Requests are issued one at a time: pages are fetched sequentially until
the service returns an empty page, and every request goes through the
bounded retry policy.
"""

import logging
import time
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Union

import httpx

from ..config import DEFAULT_PAGE_SIZE, Settings
from ..models import TimeLogEntry
from .errors import ConfigurationError
from .retry import RetryPolicy, send_with_retries

DateLike = Union[date, datetime, str]


def _format_date(value: Optional[DateLike]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


class TimeLogClient:
    """
    Client for the time-log query and create endpoints.
    """

    def __init__(
        self,
        base_url: str,
        org_id: str,
        api_key: str,
        user_id: Optional[str] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        retry_policy: Optional[RetryPolicy] = None,
        create_retry_policy: Optional[RetryPolicy] = None,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
        timeout: float = 30.0,
    ):
        """
        Initialize the client.

        Args:
            base_url: Service root, a trailing slash is ignored
            org_id: Organization segment of the endpoint paths
            api_key: Value of the x-functions-key header
            user_id: User whose entries are queried
            page_size: Entries requested per page
            retry_policy: Retry policy for queries
            create_retry_policy: Retry policy for entry creation
            http_client: Optional preconfigured httpx client (not closed by this class)
            sleep: Sleep function used between retries
            timeout: Request timeout when this class creates its own httpx client
        """
        self.base_url = (base_url or "").rstrip("/")
        self.org_id = org_id
        self.api_key = api_key
        self.user_id = user_id
        self.page_size = int(page_size) if page_size else DEFAULT_PAGE_SIZE
        self.retry_policy = retry_policy or RetryPolicy()
        self.create_retry_policy = create_retry_policy or RetryPolicy(max_retries=2, base_delay=0.3)
        self.sleep = sleep
        self._owns_client = http_client is None
        self.client = http_client or httpx.Client(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "TimeLogClient":
        return cls(
            base_url=settings.time_log_base_url,
            org_id=settings.time_log_org_id,
            api_key=settings.time_log_api_key,
            user_id=settings.time_log_user_id,
            page_size=settings.page_size,
            **kwargs,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        if self._owns_client:
            self.client.close()

    def _query_url(self) -> str:
        return f"{self.base_url}/{self.org_id}/timelog/query"

    def _create_url(self) -> str:
        return f"{self.base_url}/{self.org_id}/timelog"

    def fetch_entries(
        self,
        from_date: Optional[DateLike] = None,
        to_date: Optional[DateLike] = None,
    ) -> List[TimeLogEntry]:
        """
        Fetch every entry of the configured user, page by page.

        Args:
            from_date: Optional lower bound of the query window
            to_date: Optional upper bound of the query window

        Returns:
            Normalized entries in the order the service returned them
        """
        headers = {
            "x-functions-key": self.api_key,
            "Accept": "application/json",
        }
        entries: List[TimeLogEntry] = []
        page = 1

        while True:
            params: Dict[str, Any] = {
                "userId": self.user_id,
                "page": page,
                "pageSize": self.page_size,
            }
            if from_date is not None:
                params["fromDate"] = _format_date(from_date)
            if to_date is not None:
                params["toDate"] = _format_date(to_date)

            response = send_with_retries(
                lambda: self.client.get(self._query_url(), params=params, headers=headers),
                self.retry_policy,
                context=f"page {page}",
                sleep=self.sleep,
                operation="TimeLog sync",
            )
            data = response.json()
            if not isinstance(data, list) or not data:
                break

            entries.extend(TimeLogEntry.from_api(raw) for raw in data)
            logging.info(f"Fetched TimeLog page {page} ({len(data)} entries)")
            page += 1

        logging.info(f"Fetched {len(entries)} TimeLog entries in {page - 1} page(s)")
        return entries

    def create_entry(self, payload: Dict[str, Any]) -> Any:
        """
        Create one remote time-log entry.

        Args:
            payload: Entry body (comment, minutes, timeTypeDescription, date, ...)

        Returns:
            The parsed response body

        Raises:
            ConfigurationError: If the connection is not configured
        """
        missing = {
            name: "Required to create TimeLog entries"
            for name, value in (
                ("timeLogBaseUrl", self.base_url),
                ("timeLogOrgId", self.org_id),
                ("timeLogApiKey", self.api_key),
            )
            if not value
        }
        if missing:
            raise ConfigurationError(missing, "TimeLog connection is not fully configured.")

        headers = {
            "x-functions-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        response = send_with_retries(
            lambda: self.client.post(self._create_url(), json=payload, headers=headers),
            self.create_retry_policy,
            context="new entry",
            sleep=self.sleep,
            operation="TimeLog creation",
        )
        return _parse_body(response)


def _parse_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        text = response.text
        return {"message": text} if text else None
