"""Device token storage."""
import logging
from typing import List, Optional

from sqlalchemy import and_, delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..database import async_session
from ..models import DeviceToken
from ..utils.clock import local_now
from ..utils.db_utils import retry_on_lock

logger = logging.getLogger(__name__)


class SqlDeviceTokenStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = async_session):
        self._session_factory = session_factory

    async def get_active_by_user_id(self, user_id: int) -> List[DeviceToken]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(DeviceToken)
                .where(and_(DeviceToken.user_id == user_id, DeviceToken.is_active.is_(True)))
                .order_by(DeviceToken.updated_at.desc(), DeviceToken.id.asc())
            )
            return list(result.scalars().all())

    async def deactivate_token(self, token_id: int) -> None:
        """Mark a token inactive so later runs skip it."""
        async with self._session_factory() as session:
            await session.execute(
                update(DeviceToken)
                .where(DeviceToken.id == token_id)
                .values(is_active=False, updated_at=local_now())
            )
            await retry_on_lock(session.commit)

    async def register(
        self, user_id: int, platform: str, token: str, device_id: Optional[str] = None
    ) -> DeviceToken:
        """Register a token, replacing any existing one for the same platform.

        The row for (user, platform) is updated in place and reactivated.
        """
        for attempt in range(2):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(DeviceToken).where(
                        and_(DeviceToken.user_id == user_id, DeviceToken.platform == platform)
                    )
                )
                existing = result.scalar_one_or_none()
                if existing:
                    existing.token = token
                    existing.device_id = device_id
                    existing.is_active = True
                    existing.updated_at = local_now()
                    await retry_on_lock(session.commit)
                    await session.refresh(existing)
                    logger.info(f"Device token updated for user {user_id} ({platform}): {token[:16]}...")
                    return existing

                device = DeviceToken(
                    user_id=user_id,
                    platform=platform,
                    token=token,
                    device_id=device_id,
                    is_active=True,
                )
                session.add(device)
                try:
                    await retry_on_lock(session.commit)
                except IntegrityError:
                    # A concurrent registration won the insert; update that row instead
                    await session.rollback()
                    if attempt == 0:
                        continue
                    raise
                await session.refresh(device)
                logger.info(f"New device token registered for user {user_id} ({platform}): {token[:16]}...")
                return device
        raise RuntimeError("unreachable")

    async def delete_for_user(self, user_id: int, platform: Optional[str] = None) -> int:
        """Delete one platform's token, or every token when platform is None."""
        async with self._session_factory() as session:
            stmt = delete(DeviceToken).where(DeviceToken.user_id == user_id)
            if platform:
                stmt = stmt.where(DeviceToken.platform == platform)
            result = await session.execute(stmt)
            await retry_on_lock(session.commit)
            return result.rowcount or 0
