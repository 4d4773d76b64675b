"""User and notification settings storage."""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from ..database import async_session
from ..models import NotificationSettings, User
from ..utils.db_utils import retry_on_lock

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = (
    "push_enabled",
    "email_enabled",
    "task_reminders",
    "harvest_reminders",
    "growth_record_notifications",
)


class SqlUserStore:
    """Loads users together with their notification settings."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = async_session):
        self._session_factory = session_factory

    async def get_by_id(self, user_id: int) -> Optional[User]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(User)
                .options(selectinload(User.notification_settings))
                .where(User.id == user_id)
            )
            return result.scalar_one_or_none()

    async def get_notification_settings(self, user_id: int) -> Optional[NotificationSettings]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(NotificationSettings).where(NotificationSettings.user_id == user_id)
            )
            return result.scalar_one_or_none()

    async def save_notification_settings(self, user_id: int, values: dict) -> NotificationSettings:
        """Create or update the settings row, changing only the given fields."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(NotificationSettings).where(NotificationSettings.user_id == user_id)
            )
            settings = result.scalar_one_or_none()
            if settings is None:
                settings = NotificationSettings(user_id=user_id)
                session.add(settings)

            for field in SETTINGS_FIELDS:
                if field in values and values[field] is not None:
                    setattr(settings, field, values[field])

            await retry_on_lock(session.commit)
            await session.refresh(settings)
            logger.info(f"Notification settings saved for user {user_id}")
            return settings
