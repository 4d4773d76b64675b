"""Shared FastAPI dependencies."""
from ..config import settings
from ..repositories import SqlDeviceTokenStore, SqlUserStore
from ..services.pipeline import NotificationPipeline, build_pipeline


def get_device_store() -> SqlDeviceTokenStore:
    return SqlDeviceTokenStore()


def get_user_store() -> SqlUserStore:
    return SqlUserStore()


def get_pipeline() -> NotificationPipeline:
    """Build a pipeline per request so configuration changes are picked up."""
    return build_pipeline(settings)
