"""
Bounded retry with exponential backoff for time-log requests.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, FrozenSet

import httpx

from .errors import AuthorizationError, TimeLogRequestError

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})
AUTH_STATUSES = frozenset({401, 403})


@dataclass(frozen=True)
class RetryPolicy:
    """
    Configuration for retry behavior with exponential backoff.
    """
    max_retries: int = 3
    base_delay: float = 0.4  # seconds
    retryable_statuses: FrozenSet[int] = field(default=RETRYABLE_STATUSES)

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based)."""
        return self.base_delay * (2 ** attempt)

    def should_retry(self, status_code: int, attempt: int) -> bool:
        return status_code in self.retryable_statuses and attempt < self.max_retries


def send_with_retries(
    send: Callable[[], httpx.Response],
    policy: RetryPolicy,
    context: str,
    sleep: Callable[[float], None] = time.sleep,
    operation: str = "TimeLog request",
) -> httpx.Response:
    """
    Issue a request, retrying retryable statuses with backoff.

    Args:
        send: Callable performing one HTTP attempt
        policy: Retry limits and delays
        context: Short description used in error messages (e.g. "page 2")
        sleep: Sleep function, injectable for tests
        operation: Prefix for error messages

    Returns:
        The first successful response

    Raises:
        AuthorizationError: On 401/403, without retrying
        TimeLogRequestError: On other failures once retries are exhausted
    """
    attempt = 0
    while True:
        try:
            response = send()
        except httpx.RequestError as e:
            raise TimeLogRequestError(
                f"{operation} failed: could not reach the service while requesting {context}: {e}",
                context=context,
            ) from e

        if response.status_code in AUTH_STATUSES:
            raise AuthorizationError(
                response.status_code,
                f"{operation} failed: unauthorized (check API key and permissions).",
            )

        if response.is_success:
            return response

        if policy.should_retry(response.status_code, attempt):
            delay = policy.delay_for(attempt)
            logging.warning(
                f"{operation} got HTTP {response.status_code} for {context}, "
                f"retrying in {delay:.2f}s (attempt {attempt + 1}/{policy.max_retries})"
            )
            sleep(delay)
            attempt += 1
            continue

        detail = _error_detail(response)
        raise TimeLogRequestError(
            f"{operation} failed: HTTP {response.status_code} while requesting {context}{detail}.",
            status_code=response.status_code,
            context=context,
        )


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return ""
    if isinstance(body, dict) and body.get("message"):
        return f" - {body['message']}"
    return ""
