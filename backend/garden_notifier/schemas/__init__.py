"""Pydantic schemas for API request/response models."""
from .scheduler import (
    SchedulerRunRequest,
    SchedulerRunResponse,
    SchedulerStatusResponse,
)
from .device import (
    DeviceRegisterRequest,
    DeviceResponse,
    DeviceUnregisterResponse,
)
from .notification_settings import (
    NotificationSettingsResponse,
    NotificationSettingsUpdate,
)

__all__ = [
    "SchedulerRunRequest",
    "SchedulerRunResponse",
    "SchedulerStatusResponse",
    "DeviceRegisterRequest",
    "DeviceResponse",
    "DeviceUnregisterResponse",
    "NotificationSettingsResponse",
    "NotificationSettingsUpdate",
]
