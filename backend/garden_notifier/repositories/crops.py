"""Crop queries used by the time-window scanner."""
from datetime import date, timedelta
from typing import List

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from ..database import async_session
from ..models import Crop, User
from ..models.crop import CROP_STATUS_GROWING


class SqlCropStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = async_session):
        self._session_factory = session_factory

    async def get_upcoming_harvests(self, today: date, days_ahead: int) -> List[Crop]:
        """Growing crops expected between today and ``days_ahead`` days out, inclusive."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Crop)
                .options(selectinload(Crop.user).selectinload(User.notification_settings))
                .where(
                    and_(
                        Crop.status == CROP_STATUS_GROWING,
                        Crop.expected_harvest_date >= today,
                        Crop.expected_harvest_date <= today + timedelta(days=days_ahead),
                    )
                )
                .order_by(Crop.user_id.asc(), Crop.expected_harvest_date.asc(), Crop.id.asc())
            )
            return list(result.scalars().all())
