"""Task queries used by the time-window scanner."""
from datetime import date, datetime, time, timedelta
from typing import List

from sqlalchemy import and_, case, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from ..database import async_session
from ..models import Task, User
from ..models.task import TASK_STATUS_PENDING

# Sort key putting high priority tasks first
_priority_rank = case(
    (Task.priority == "high", 0),
    (Task.priority == "medium", 1),
    else_=2,
)


def _start_of(day: date) -> datetime:
    return datetime.combine(day, time.min)


class SqlTaskStore:
    """System-wide pending task lookups with the owning user preloaded."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = async_session):
        self._session_factory = session_factory

    async def get_all_overdue_tasks(self, today: date) -> List[Task]:
        """Pending tasks due before today, grouped by user, oldest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Task)
                .options(selectinload(Task.user).selectinload(User.notification_settings))
                .where(
                    and_(
                        Task.status == TASK_STATUS_PENDING,
                        Task.due_date < _start_of(today),
                    )
                )
                .order_by(Task.user_id.asc(), Task.due_date.asc(), Task.id.asc())
            )
            return list(result.scalars().all())

    async def get_all_today_tasks(self, today: date) -> List[Task]:
        """Pending tasks due today, grouped by user, most important first."""
        start = _start_of(today)
        async with self._session_factory() as session:
            result = await session.execute(
                select(Task)
                .options(selectinload(Task.user).selectinload(User.notification_settings))
                .where(
                    and_(
                        Task.status == TASK_STATUS_PENDING,
                        Task.due_date >= start,
                        Task.due_date < start + timedelta(days=1),
                    )
                )
                .order_by(Task.user_id.asc(), _priority_rank, Task.due_date.asc(), Task.id.asc())
            )
            return list(result.scalars().all())
