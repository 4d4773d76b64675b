"""Clock abstraction so time and sleeps can be controlled in tests."""
import asyncio
import time
from datetime import datetime
from typing import Optional, Protocol
from zoneinfo import ZoneInfo

from ..config import settings


class Clock(Protocol):
    def now(self) -> datetime:
        """Current wall-clock time as a naive datetime in the local zone."""

    def monotonic(self) -> float:
        """Seconds from an arbitrary fixed point, never going backwards."""

    async def sleep(self, seconds: float) -> None:
        """Suspend the caller for ``seconds``."""


class SystemClock:
    """Real time in a configured timezone."""

    def __init__(self, timezone: str = "UTC"):
        self._tz = ZoneInfo(timezone)

    def now(self) -> datetime:
        # Stored datetimes are naive, expressed in the configured zone
        return datetime.now(self._tz).replace(tzinfo=None)

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class Deadline:
    """A point in time after which a run should stop starting new work."""

    def __init__(self, clock: Clock, seconds: Optional[float]):
        self._clock = clock
        self._expires_at = None if seconds is None else clock.monotonic() + seconds

    def remaining(self) -> Optional[float]:
        """Seconds left, or None when the deadline is unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock.monotonic())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def bound(self, timeout: Optional[float]) -> Optional[float]:
        """Clamp a per-call timeout so it never outlives the deadline."""
        remaining = self.remaining()
        if remaining is None:
            return timeout
        if timeout is None:
            return remaining
        return min(timeout, remaining)


def local_now() -> datetime:
    """Naive current time in TIMEZONE, the same base the pipeline's clock uses."""
    return SystemClock(settings.timezone).now()
