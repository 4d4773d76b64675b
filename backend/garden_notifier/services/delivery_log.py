"""Delivery log recorder - persists the outcome of each dispatched event."""
import logging
from datetime import datetime, timedelta
from typing import Optional

from ..exceptions import LogWriteError
from ..models import NotificationLog
from ..models.notification_log import LOG_STATUS_FAILED, LOG_STATUS_SENT, LOG_TTL_HOURS
from ..repositories import NotificationLogStore
from .event_generator import NotificationEvent, NotificationType

logger = logging.getLogger(__name__)

# Keeps error messages within the log column
MAX_ERROR_LENGTH = 2000


class DeliveryLogRecorder:
    def __init__(self, log_store: NotificationLogStore):
        self.log_store = log_store

    async def record(
        self,
        event: NotificationEvent,
        key: str,
        sent: bool,
        channels: str,
        error_message: Optional[str],
        now: datetime,
        reservation: Optional[NotificationLog] = None,
    ) -> bool:
        """Write the final status for an event.

        Updates the pending reservation row when there is one, otherwise
        inserts a new row. Returns False when the write failed; failures are
        logged and never raised.
        """
        if error_message and len(error_message) > MAX_ERROR_LENGTH:
            error_message = error_message[: MAX_ERROR_LENGTH - 3] + "..."

        values = {
            "status": LOG_STATUS_SENT if sent else LOG_STATUS_FAILED,
            "channel": channels,
            "title": event.title,
            "body": event.body,
            "error_message": error_message,
            "deduplication_key": key,
            "sent_at": now if sent else None,
            "expires_at": now + timedelta(hours=LOG_TTL_HOURS),
        }

        try:
            await self._write(event, values, reservation)
        except LogWriteError as e:
            logger.error(f"{e} (cause: {e.__cause__})")
            return False
        return True

    async def _write(self, event: NotificationEvent, values: dict, reservation: Optional[NotificationLog]):
        try:
            if reservation is not None and reservation.id is not None:
                await self.log_store.finalize(reservation.id, values)
            else:
                await self.log_store.create(
                    NotificationLog(
                        user_id=event.user_id,
                        notification_type=NotificationType(event.type).value,
                        **values,
                    )
                )
        except Exception as e:
            raise LogWriteError(f"failed to record notification log {values['deduplication_key']}") from e
