"""Error types raised by the notification pipeline."""
from typing import Optional


class NotificationError(Exception):
    """Base class for notification pipeline errors."""


class ScanError(NotificationError):
    """A time-window query failed; the run cannot continue."""


class RenderError(NotificationError):
    """An event's data could not be turned into a push or email payload."""


class DeliveryError(NotificationError):
    """A provider rejected or failed a delivery attempt.

    ``code`` holds the provider's error code when it reports one (for example
    ``EndpointDisabled`` from SNS or ``BadDeviceToken`` from APNs).
    ``retryable`` is False for errors that will fail the same way again.
    """

    def __init__(self, message: str, code: Optional[str] = None, retryable: bool = True):
        super().__init__(message)
        self.code = code
        self.retryable = retryable


class RetryExhaustedError(DeliveryError):
    """Every attempt failed; wraps the last underlying error."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(
            f"failed after {attempts - 1} retries: {last_error}",
            code=getattr(last_error, "code", None),
            retryable=False,
        )
        self.attempts = attempts
        self.last_error = last_error


class DeadlineExceededError(DeliveryError):
    """The run's deadline expired before delivery could finish."""

    def __init__(self, message: str = "run deadline exceeded"):
        super().__init__(message, retryable=False)


class LogWriteError(NotificationError):
    """A notification log row could not be written."""
