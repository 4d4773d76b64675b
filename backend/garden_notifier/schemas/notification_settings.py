"""Notification settings schemas."""
from typing import Optional
from pydantic import BaseModel


class NotificationSettingsResponse(BaseModel):
    """Schema for notification settings response."""
    push_enabled: bool = True
    email_enabled: bool = True
    task_reminders: bool = True
    harvest_reminders: bool = True
    growth_record_notifications: bool = False

    class Config:
        from_attributes = True


class NotificationSettingsUpdate(BaseModel):
    """Schema for updating settings. Omitted fields are left unchanged."""
    push_enabled: Optional[bool] = None
    email_enabled: Optional[bool] = None
    task_reminders: Optional[bool] = None
    harvest_reminders: Optional[bool] = None
    growth_record_notifications: Optional[bool] = None
