"""Database utility functions."""
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import OperationalError, InterfaceError

from ..exceptions import RetryExhaustedError
from .retry import RetryPolicy, retry_async

logger = logging.getLogger(__name__)

T = TypeVar('T')

_TRANSIENT_MESSAGES = (
    "database is locked",
    "connection refused",
    "connection reset",
    "connection closed",
    "server closed",
    "timeout",
    "too many clients",
)


def is_transient_db_error(error: BaseException) -> bool:
    """True for lock contention and dropped connections worth retrying."""
    if not isinstance(error, (OperationalError, InterfaceError)):
        return False
    error_str = str(error).lower()
    return any(msg in error_str for msg in _TRANSIENT_MESSAGES)


async def retry_on_lock(coro_func: Callable[[], Awaitable[T]], max_retries: int = 3, base_delay: float = 0.1) -> T:
    """Retry a database operation on transient errors with exponential backoff.

    Args:
        coro_func: Async function to call (should be a callable that returns a coroutine)
        max_retries: Maximum number of attempts
        base_delay: Base delay in seconds (doubles with each retry)

    Returns:
        The result of the coroutine function

    Raises:
        OperationalError: If all retries fail or error is not transient
    """
    policy = RetryPolicy(max_retries=max_retries - 1, initial_backoff_ms=int(base_delay * 1000))
    try:
        return await retry_async(
            coro_func,
            policy,
            is_retryable=is_transient_db_error,
            description="database operation",
        )
    except RetryExhaustedError as e:
        raise e.last_error
