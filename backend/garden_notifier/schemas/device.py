"""Device token schemas."""
from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field


class DeviceRegisterRequest(BaseModel):
    """Request to register a device for push notifications."""
    token: str = Field(..., min_length=1, max_length=512)
    platform: Literal["ios", "android", "web"]
    device_id: Optional[str] = Field(None, max_length=255)


class DeviceResponse(BaseModel):
    """A registered device. The token itself is never echoed back."""
    id: int
    user_id: int
    platform: str
    device_id: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DeviceUnregisterResponse(BaseModel):
    success: bool
    deleted: int
    message: str
