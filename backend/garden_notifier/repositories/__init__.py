"""Storage interfaces and their SQLAlchemy implementations."""
from .base import UserStore, TaskStore, CropStore, DeviceTokenStore, NotificationLogStore
from .users import SqlUserStore
from .tasks import SqlTaskStore
from .crops import SqlCropStore
from .device_tokens import SqlDeviceTokenStore
from .notification_logs import SqlNotificationLogStore

__all__ = [
    "UserStore",
    "TaskStore",
    "CropStore",
    "DeviceTokenStore",
    "NotificationLogStore",
    "SqlUserStore",
    "SqlTaskStore",
    "SqlCropStore",
    "SqlDeviceTokenStore",
    "SqlNotificationLogStore",
]
