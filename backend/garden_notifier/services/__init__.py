"""Services for scanning, rendering, delivering and scheduling notifications."""
from .pipeline import NotificationPipeline, build_pipeline
from .scheduler import SchedulerService

__all__ = ["NotificationPipeline", "build_pipeline", "SchedulerService"]
