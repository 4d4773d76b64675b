"""Scheduler trigger schemas."""
from typing import List, Optional
from pydantic import BaseModel


class SchedulerRunRequest(BaseModel):
    """Optional body for the trigger; the token may also come as a header."""
    scheduler_token: Optional[str] = None


class SchedulerRunResponse(BaseModel):
    """Summary of one notification run."""
    success: bool
    message: str
    processed_at: Optional[str] = None
    total_events: int = 0
    successful_sends: int = 0
    failed_sends: int = 0
    skipped_sends: int = 0
    deduplicated_count: int = 0
    overdue_task_alerts: int = 0
    today_task_reminders: int = 0
    harvest_reminders: int = 0
    cancelled: bool = False
    errors: List[str] = []


class SchedulerStatusResponse(BaseModel):
    status: str
    service: str
