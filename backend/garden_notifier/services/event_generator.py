"""Event generator - turns scan results into notification events."""
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from ..models import Crop, Task

# Users need at least this many overdue tasks before they are alerted
DEFAULT_OVERDUE_THRESHOLD = 3


class NotificationType(str, Enum):
    TASK_DUE_REMINDER = "task_due_reminder"
    TASK_OVERDUE_ALERT = "task_overdue_alert"
    HARVEST_REMINDER = "harvest_reminder"


@dataclass
class NotificationEvent:
    """One notification to deliver to one user. Never persisted."""
    type: NotificationType
    user_id: int
    title: str
    body: str
    user_email: str = ""
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ScanResult:
    """Rows returned by the time-window scanner for one run."""
    today: date
    overdue_tasks: List[Task] = field(default_factory=list)
    today_tasks: List[Task] = field(default_factory=list)
    upcoming_crops: List[Crop] = field(default_factory=list)


def _group_by_user(rows: list) -> "OrderedDict[int, list]":
    # Keeps users in first-seen order and rows in scan order
    groups: "OrderedDict[int, list]" = OrderedDict()
    for row in rows:
        groups.setdefault(row.user_id, []).append(row)
    return groups


def _email_of(row) -> str:
    user = getattr(row, "user", None)
    return (user.email or "") if user is not None else ""


def build_overdue_events(tasks: List[Task], threshold: int = DEFAULT_OVERDUE_THRESHOLD) -> List[NotificationEvent]:
    events = []
    for user_id, user_tasks in _group_by_user(tasks).items():
        count = len(user_tasks)
        if count < threshold:
            continue
        events.append(
            NotificationEvent(
                type=NotificationType.TASK_OVERDUE_ALERT,
                user_id=user_id,
                user_email=_email_of(user_tasks[0]),
                title="Overdue tasks",
                body=f"You have {count} overdue tasks. Please take a look.",
                data={
                    "overdue_count": count,
                    "task_ids": [t.id for t in user_tasks],
                },
            )
        )
    return events


def build_due_today_events(tasks: List[Task]) -> List[NotificationEvent]:
    events = []
    for user_id, user_tasks in _group_by_user(tasks).items():
        count = len(user_tasks)
        first = user_tasks[0]
        if count == 1:
            body = f"Today's task: {first.title}"
        else:
            body = f"You have {count} tasks due today."
        events.append(
            NotificationEvent(
                type=NotificationType.TASK_DUE_REMINDER,
                user_id=user_id,
                user_email=_email_of(first),
                title="Today's task reminder",
                body=body,
                data={
                    "task_count": count,
                    "task_ids": [t.id for t in user_tasks],
                    "task_title": first.title,
                },
            )
        )
    return events


def build_harvest_events(crops: List[Crop], today: date) -> List[NotificationEvent]:
    events = []
    for crop in crops:
        days_until = (crop.expected_harvest_date - today).days
        if days_until == 0:
            body = f"{crop.name} is ready to harvest today."
        elif days_until == 1:
            body = f"{crop.name} is ready to harvest in 1 day."
        else:
            body = f"{crop.name} is ready to harvest in {days_until} days."
        events.append(
            NotificationEvent(
                type=NotificationType.HARVEST_REMINDER,
                user_id=crop.user_id,
                user_email=_email_of(crop),
                title="Harvest reminder",
                body=body,
                data={
                    "crop_id": crop.id,
                    "crop_name": crop.name,
                    "days_until": days_until,
                },
            )
        )
    return events


def generate_events(scan: ScanResult, overdue_threshold: Optional[int] = None) -> List[NotificationEvent]:
    """Build every event for a run: overdue alerts, then due-today reminders, then harvests."""
    threshold = DEFAULT_OVERDUE_THRESHOLD if overdue_threshold is None else overdue_threshold
    return (
        build_overdue_events(scan.overdue_tasks, threshold)
        + build_due_today_events(scan.today_tasks)
        + build_harvest_events(scan.upcoming_crops, scan.today)
    )
