"""Device registration API endpoints for push notifications."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..repositories import SqlDeviceTokenStore, SqlUserStore
from ..schemas.device import DeviceRegisterRequest, DeviceResponse, DeviceUnregisterResponse
from .dependencies import get_device_store, get_user_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users/{user_id}/devices", tags=["devices"])


@router.post("", response_model=DeviceResponse)
async def register_device(
    user_id: int,
    request: DeviceRegisterRequest,
    devices: SqlDeviceTokenStore = Depends(get_device_store),
    users: SqlUserStore = Depends(get_user_store),
):
    """Register a device for push notifications.

    A user keeps one token per platform: registering again for the same
    platform replaces the token and reactivates it. The app should call this
    on every launch to keep the token current.
    """
    if await users.get_by_id(user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")

    device = await devices.register(
        user_id=user_id,
        platform=request.platform,
        token=request.token,
        device_id=request.device_id,
    )
    return device


@router.delete("", response_model=DeviceUnregisterResponse)
async def unregister_device(
    user_id: int,
    platform: Optional[str] = Query(None, pattern="^(ios|android|web)$"),
    devices: SqlDeviceTokenStore = Depends(get_device_store),
):
    """Remove the user's token for one platform, or every token when no platform is given."""
    deleted = await devices.delete_for_user(user_id, platform)
    if deleted == 0:
        raise HTTPException(status_code=404, detail="Device not found")

    logger.info(f"Removed {deleted} device token(s) for user {user_id} (platform={platform or 'all'})")
    return DeviceUnregisterResponse(
        success=True,
        deleted=deleted,
        message="Device unregistered successfully",
    )
