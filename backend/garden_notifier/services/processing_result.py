"""Result aggregator - run summary returned to the trigger caller."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .event_generator import NotificationEvent, NotificationType


@dataclass
class ProcessingResult:
    """Counts and errors for one pipeline run. Never persisted."""
    processed_at: datetime
    total_events: int = 0
    successful_sends: int = 0
    failed_sends: int = 0
    skipped_sends: int = 0
    deduplicated_count: int = 0
    overdue_task_alerts: int = 0
    today_task_reminders: int = 0
    harvest_reminders: int = 0
    cancelled: bool = False
    errors: List[str] = field(default_factory=list)

    def record_scan(self, events: List[NotificationEvent]) -> None:
        self.total_events = len(events)
        for event in events:
            if event.type == NotificationType.TASK_OVERDUE_ALERT:
                self.overdue_task_alerts += 1
            elif event.type == NotificationType.TASK_DUE_REMINDER:
                self.today_task_reminders += 1
            elif event.type == NotificationType.HARVEST_REMINDER:
                self.harvest_reminders += 1

    def record_success(self) -> None:
        self.successful_sends += 1

    def record_failure(self, event: NotificationEvent, cause: Optional[object] = None) -> None:
        self.failed_sends += 1
        if cause:
            self.add_error(event, cause)

    def record_skipped(self) -> None:
        self.skipped_sends += 1

    def record_deduplicated(self) -> None:
        self.deduplicated_count += 1

    def add_error(self, event: Optional[NotificationEvent], cause: object) -> None:
        if event is None:
            self.errors.append(str(cause))
            return
        self.errors.append(f"event {event.type.value} for user {event.user_id}: {cause}")

    @property
    def processed_count(self) -> int:
        """Events that reached delivery (sent or failed)."""
        return self.successful_sends + self.failed_sends

    def to_dict(self) -> dict:
        return {
            "processed_at": self.processed_at.isoformat(),
            "total_events": self.total_events,
            "successful_sends": self.successful_sends,
            "failed_sends": self.failed_sends,
            "skipped_sends": self.skipped_sends,
            "deduplicated_count": self.deduplicated_count,
            "overdue_task_alerts": self.overdue_task_alerts,
            "today_task_reminders": self.today_task_reminders,
            "harvest_reminders": self.harvest_reminders,
            "cancelled": self.cancelled,
            "errors": list(self.errors),
        }
