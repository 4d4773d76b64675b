"""Deduplication gate - at most one notification per (type, user, day)."""
import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import LogWriteError, NotificationError
from ..models import NotificationLog
from ..models.notification_log import LOG_STATUS_PENDING, LOG_TTL_HOURS
from ..repositories import NotificationLogStore
from .event_generator import NotificationEvent, NotificationType

logger = logging.getLogger(__name__)


def build_deduplication_key(event_type: NotificationType, user_id: int, run_date: date) -> str:
    """Key shared by every event of one type for one user on one day."""
    return f"{NotificationType(event_type).value}:{user_id}:{run_date.strftime('%Y-%m-%d')}"


class DeduplicationGate:
    """Looks up and reserves deduplication keys in the notification log."""

    def __init__(self, log_store: NotificationLogStore):
        self.log_store = log_store

    async def is_duplicate(self, key: str, now: datetime) -> bool:
        """True when an unexpired log row already holds ``key``.

        Raises:
            NotificationError: The lookup failed; callers may carry on since
                the reservation still guards against double delivery
        """
        try:
            existing = await self.log_store.get_by_deduplication_key(key, now)
        except SQLAlchemyError as e:
            logger.warning(f"Deduplication lookup failed for {key}: {e}")
            raise NotificationError(f"deduplication check failed: {e}") from e
        return existing is not None

    async def reserve(
        self, event: NotificationEvent, key: str, channels: str, now: datetime
    ) -> Optional[NotificationLog]:
        """Claim ``key`` for this event.

        Returns the pending log row, or None when another row holds the key.

        Raises:
            LogWriteError: The reservation could not be written
        """
        log = NotificationLog(
            user_id=event.user_id,
            notification_type=NotificationType(event.type).value,
            channel=channels,
            title=event.title,
            body=event.body,
            status=LOG_STATUS_PENDING,
            deduplication_key=key,
            expires_at=now + timedelta(hours=LOG_TTL_HOURS),
        )
        try:
            return await self.log_store.reserve(log, now)
        except SQLAlchemyError as e:
            raise LogWriteError(f"failed to reserve {key}: {e}") from e
