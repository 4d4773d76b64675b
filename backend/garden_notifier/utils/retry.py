"""Bounded exponential-backoff retry for async calls."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from ..exceptions import DeadlineExceededError, DeliveryError, RetryExhaustedError
from .clock import Clock, Deadline, SystemClock

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to retry and how long to wait in between.

    ``max_retries`` counts retries after the first attempt, so a call that
    keeps failing is made ``max_retries + 1`` times. The wait starts at
    ``initial_backoff_ms`` and doubles after every failure.
    """
    max_retries: int = 3
    initial_backoff_ms: int = 1000

    def delays(self) -> list[float]:
        """Backoff delays in seconds, one per retry."""
        return [self.initial_backoff_ms * (2 ** n) / 1000 for n in range(self.max_retries)]


def _default_retryable(error: BaseException) -> bool:
    return getattr(error, "retryable", True)


async def retry_async(
    call: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    clock: Optional[Clock] = None,
    deadline: Optional[Deadline] = None,
    is_retryable: Callable[[BaseException], bool] = _default_retryable,
    attempt_timeout: Optional[float] = None,
    description: str = "call",
) -> T:
    """Run ``call`` until it succeeds or the policy is exhausted.

    Args:
        call: Zero-argument callable returning a fresh coroutine per attempt
        policy: Retry count and backoff
        clock: Source of sleeps (real time unless a fake is injected)
        deadline: Optional run deadline; attempts and sleeps never outlive it
        is_retryable: Errors for which this returns False are raised at once
        attempt_timeout: Upper bound in seconds for a single attempt
        description: Label used in log messages

    Raises:
        RetryExhaustedError: All attempts failed; ``last_error`` holds the cause
        DeadlineExceededError: The deadline expired before the next attempt
        asyncio.CancelledError: The calling task was cancelled
    """
    clock = clock or SystemClock()
    backoff = policy.initial_backoff_ms / 1000
    attempts = policy.max_retries + 1
    last_error: Optional[BaseException] = None

    for attempt in range(attempts):
        if deadline is not None and deadline.expired:
            raise DeadlineExceededError(f"deadline exceeded before {description} attempt {attempt + 1}")

        timeout = deadline.bound(attempt_timeout) if deadline is not None else attempt_timeout
        try:
            if timeout is None:
                return await call()
            return await asyncio.wait_for(call(), timeout=timeout)
        except asyncio.TimeoutError:
            if deadline is not None and deadline.expired:
                raise DeadlineExceededError(f"deadline exceeded during {description}")
            last_error = DeliveryError(f"{description} timed out after {timeout}s", code="Timeout")
        except Exception as e:
            if not is_retryable(e):
                raise
            last_error = e

        if attempt == attempts - 1:
            break

        remaining = deadline.remaining() if deadline is not None else None
        if remaining is not None and remaining < backoff:
            raise DeadlineExceededError(
                f"deadline exceeded while backing off {description}: {last_error}"
            ) from last_error

        logger.warning(
            f"{description} failed, retrying in {backoff:.2f}s "
            f"(attempt {attempt + 1}/{attempts}): {last_error}"
        )
        await clock.sleep(backoff)
        backoff *= 2

    raise RetryExhaustedError(attempts, last_error) from last_error
