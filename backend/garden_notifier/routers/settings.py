"""Notification settings API endpoints."""
from fastapi import APIRouter, Depends, HTTPException

from ..repositories import SqlUserStore
from ..schemas.notification_settings import NotificationSettingsResponse, NotificationSettingsUpdate
from .dependencies import get_user_store

router = APIRouter(prefix="/api/users/{user_id}/notification-settings", tags=["settings"])


@router.get("", response_model=NotificationSettingsResponse)
async def get_notification_settings(user_id: int, users: SqlUserStore = Depends(get_user_store)):
    """Get a user's notification settings, falling back to the defaults."""
    if await users.get_by_id(user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")

    stored = await users.get_notification_settings(user_id)
    if stored is None:
        return NotificationSettingsResponse()
    return NotificationSettingsResponse.model_validate(stored)


@router.put("", response_model=NotificationSettingsResponse)
async def update_notification_settings(
    user_id: int,
    update: NotificationSettingsUpdate,
    users: SqlUserStore = Depends(get_user_store),
):
    """Update notification settings. Only fields present in the body change."""
    if await users.get_by_id(user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")

    saved = await users.save_notification_settings(user_id, update.model_dump(exclude_unset=True))
    return NotificationSettingsResponse.model_validate(saved)
