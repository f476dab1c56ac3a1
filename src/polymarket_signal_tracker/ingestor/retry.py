"""Retry with exponential backoff for sync and async callables."""

import asyncio
import inspect
import logging
import time
from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 1.0


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, message: str, last_exception: Exception | None = None) -> None:
        super().__init__(message)
        self.last_exception = last_exception


def with_retry(
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_RETRY_BASE_DELAY,
    retry_on: tuple[type[Exception], ...] = (Exception,),
) -> Callable[[F], F]:
    """Decorator for adding retry logic with exponential backoff.

    Works on plain functions and coroutine functions; coroutines back off
    with asyncio.sleep so the event loop is never blocked.

    Args:
        max_retries: Maximum number of retry attempts.
        base_delay: Base delay in seconds (doubles with each retry).
        retry_on: Tuple of exception types to retry on.

    Returns:
        Decorated function with retry logic.
    """

    def _log_attempt(attempt: int, e: Exception, delay: float) -> None:
        logger.warning(
            "Attempt %d/%d failed: %s. Retrying in %.1f seconds...",
            attempt + 1,
            max_retries + 1,
            str(e),
            delay,
        )

    def decorator(func: F) -> F:
        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                last_exception: Exception | None = None
                for attempt in range(max_retries + 1):
                    try:
                        return await func(*args, **kwargs)
                    except retry_on as e:
                        last_exception = e
                        if attempt == max_retries:
                            break
                        delay = base_delay * (2**attempt)
                        _log_attempt(attempt, e, delay)
                        await asyncio.sleep(delay)
                raise RetryError(
                    f"All {max_retries + 1} attempts failed for {func.__name__}",
                    last_exception=last_exception,
                )

            return async_wrapper  # type: ignore[return-value]

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            last_exception: Exception | None = None
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except retry_on as e:
                    last_exception = e
                    if attempt == max_retries:
                        break
                    delay = base_delay * (2**attempt)
                    _log_attempt(attempt, e, delay)
                    time.sleep(delay)
            raise RetryError(
                f"All {max_retries + 1} attempts failed for {func.__name__}",
                last_exception=last_exception,
            )

        return wrapper  # type: ignore[return-value]

    return decorator
