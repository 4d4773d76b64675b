"""API routers."""
from .scheduler import router as scheduler_router
from .devices import router as devices_router
from .settings import router as settings_router

__all__ = ["scheduler_router", "devices_router", "settings_router"]
