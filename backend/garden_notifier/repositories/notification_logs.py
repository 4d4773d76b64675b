"""Notification log storage, including the deduplication reservation."""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..database import async_session
from ..models import NotificationLog
from ..utils.db_utils import retry_on_lock

logger = logging.getLogger(__name__)

_COPIED_COLUMNS = (
    "user_id",
    "notification_type",
    "channel",
    "title",
    "body",
    "status",
    "error_message",
    "deduplication_key",
    "sent_at",
    "expires_at",
)


def _copy(log: NotificationLog) -> NotificationLog:
    return NotificationLog(**{name: getattr(log, name) for name in _COPIED_COLUMNS})


class SqlNotificationLogStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = async_session):
        self._session_factory = session_factory

    async def get_by_deduplication_key(self, key: str, now: datetime) -> Optional[NotificationLog]:
        """Return the unexpired log holding ``key``, if any."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(NotificationLog).where(
                    and_(
                        NotificationLog.deduplication_key == key,
                        NotificationLog.expires_at > now,
                    )
                )
            )
            return result.scalar_one_or_none()

    async def reserve(self, log: NotificationLog, now: datetime) -> Optional[NotificationLog]:
        """Atomically claim the log's deduplication key.

        Inserts the row under the unique key constraint. Returns the stored row,
        or None when another unexpired row already holds the key. An expired
        holder is removed and the insert tried once more.
        """
        for _ in range(2):
            row = _copy(log)
            async with self._session_factory() as session:
                session.add(row)
                try:
                    await retry_on_lock(session.commit)
                    return row
                except IntegrityError:
                    await session.rollback()

                result = await session.execute(
                    select(NotificationLog).where(
                        NotificationLog.deduplication_key == log.deduplication_key
                    )
                )
                holder = result.scalar_one_or_none()
                if holder is None:
                    continue
                if holder.expires_at > now:
                    return None

                logger.debug(f"Replacing expired log for key {log.deduplication_key}")
                await session.delete(holder)
                await retry_on_lock(session.commit)
        return None

    async def create(self, log: NotificationLog) -> NotificationLog:
        row = _copy(log)
        async with self._session_factory() as session:
            session.add(row)
            await retry_on_lock(session.commit)
            return row

    async def finalize(self, log_id: int, values: dict) -> None:
        """Write the final delivery outcome onto a reserved row."""
        async with self._session_factory() as session:
            await session.execute(
                update(NotificationLog).where(NotificationLog.id == log_id).values(**values)
            )
            await retry_on_lock(session.commit)

    async def delete_expired(self, now: datetime) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(NotificationLog).where(NotificationLog.expires_at < now)
            )
            await retry_on_lock(session.commit)
            return result.rowcount or 0
