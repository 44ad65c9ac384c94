"""
Retry Decorator
Backoff retry for transient provider and storage I/O.
"""

import asyncio
import logging
import traceback
from functools import wraps
from typing import Callable, TypeVar

from app.core.exceptions import NonRetryableError, RetryableError

logger = logging.getLogger(__name__)

T = TypeVar('T')


def with_retry(
    max_retries: int = 3,
    retry_delay: float = 1.0,
    exponential_backoff: bool = True,
    retryable_exceptions: tuple = (RetryableError, TimeoutError, ConnectionError)
):
    """
    Decorator to add retry logic to async provider calls.

    Args:
        max_retries: Maximum number of retry attempts
        retry_delay: Base delay between retries (seconds)
        exponential_backoff: Whether to use exponential backoff
        retryable_exceptions: Tuple of exception types that should trigger retry
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def async_wrapper(*args, **kwargs) -> T:
            last_exception = None

            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)

                except retryable_exceptions as e:
                    last_exception = e

                    if attempt < max_retries:
                        delay = retry_delay * (2 ** attempt if exponential_backoff else 1)
                        logger.warning(
                            f"[Retry {attempt + 1}/{max_retries}] {func.__name__} failed: {e}. "
                            f"Retrying in {delay:.1f}s..."
                        )
                        await asyncio.sleep(delay)
                    else:
                        logger.error(
                            f"[Failed] {func.__name__} exhausted all {max_retries} retries: {e}"
                        )

                except NonRetryableError as e:
                    logger.error(f"[Non-Retryable] {func.__name__}: {e}")
                    raise

                except Exception as e:
                    logger.debug(f"[Unexpected] {func.__name__}: {e}\n{traceback.format_exc()}")
                    raise

            # All retries exhausted
            raise last_exception

        return async_wrapper

    return decorator
