"""Exponential backoff retry for async startup operations.

Only infrastructure bootstrapping (waiting for the database to accept
connections) is retried. Request paths never retry: FHIR calls propagate
their errors and external adapters report a degraded result instead.
"""

import logging
from collections.abc import Callable
from typing import Any

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


def async_retry_with_backoff(
    max_attempts: int = 3,
    min_wait_seconds: int = 1,
    max_wait_seconds: int = 10,
    exceptions: tuple[type[Exception], ...] = (Exception,),
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Retry an async function with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts (default: 3)
        min_wait_seconds: Minimum wait between attempts in seconds (default: 1)
        max_wait_seconds: Maximum wait between attempts in seconds (default: 10)
        exceptions: Exception types that trigger a retry

    Returns:
        Function decorator

    Example:
        ```python
        @async_retry_with_backoff(max_attempts=5, min_wait_seconds=2)
        async def create_db_and_tables():
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        ```
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        return retry(
            retry=retry_if_exception_type(exceptions),
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(
                min=min_wait_seconds,
                max=max_wait_seconds,
            ),
            before_sleep=_log_retry_attempt,
            reraise=True,
        )(func)

    return decorator


def _log_retry_attempt(retry_state: Any) -> None:
    """Log each retry for observability."""
    exception = retry_state.outcome.exception()
    logger.warning(
        f"Retry attempt {retry_state.attempt_number} after {retry_state.seconds_since_start:.2f}s "
        f"for {retry_state.fn.__name__} - Exception: {exception}"
    )
