"""Storage interfaces consumed by the notification pipeline.

The pipeline only depends on these protocols, so any backing store can be
plugged in. The SQLAlchemy implementations live next to this module.
"""
from datetime import date, datetime
from typing import List, Optional, Protocol

from ..models import Crop, DeviceToken, NotificationLog, NotificationSettings, Task, User


class UserStore(Protocol):
    async def get_by_id(self, user_id: int) -> Optional[User]: ...

    async def get_notification_settings(self, user_id: int) -> Optional[NotificationSettings]: ...

    async def save_notification_settings(self, user_id: int, values: dict) -> NotificationSettings: ...


class TaskStore(Protocol):
    async def get_all_overdue_tasks(self, today: date) -> List[Task]: ...

    async def get_all_today_tasks(self, today: date) -> List[Task]: ...


class CropStore(Protocol):
    async def get_upcoming_harvests(self, today: date, days_ahead: int) -> List[Crop]: ...


class DeviceTokenStore(Protocol):
    async def get_active_by_user_id(self, user_id: int) -> List[DeviceToken]: ...

    async def deactivate_token(self, token_id: int) -> None: ...

    async def register(
        self, user_id: int, platform: str, token: str, device_id: Optional[str] = None
    ) -> DeviceToken: ...

    async def delete_for_user(self, user_id: int, platform: Optional[str] = None) -> int: ...


class NotificationLogStore(Protocol):
    async def get_by_deduplication_key(self, key: str, now: datetime) -> Optional[NotificationLog]: ...

    async def reserve(self, log: NotificationLog, now: datetime) -> Optional[NotificationLog]: ...

    async def create(self, log: NotificationLog) -> NotificationLog: ...

    async def finalize(self, log_id: int, values: dict) -> None: ...

    async def delete_expired(self, now: datetime) -> int: ...
