"""Database models."""
from .user import User
from .notification_settings import NotificationSettings
from .task import Task
from .crop import Crop
from .device_token import DeviceToken
from .notification_log import NotificationLog

__all__ = ["User", "NotificationSettings", "Task", "Crop", "DeviceToken", "NotificationLog"]
