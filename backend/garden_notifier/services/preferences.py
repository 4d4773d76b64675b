"""Settings filter - applies per-user channel and category preferences."""
import logging
from dataclasses import dataclass
from typing import Optional

from ..models import NotificationSettings
from .event_generator import NotificationType

logger = logging.getLogger(__name__)

# Settings flag that switches each notification type on or off
CATEGORY_FLAGS = {
    NotificationType.TASK_DUE_REMINDER: "task_reminders",
    NotificationType.TASK_OVERDUE_ALERT: "task_reminders",
    NotificationType.HARVEST_REMINDER: "harvest_reminders",
}

_missing = set(NotificationType) - set(CATEGORY_FLAGS)
if _missing:
    raise RuntimeError(f"notification types without a category flag: {sorted(t.value for t in _missing)}")


@dataclass(frozen=True)
class EffectivePreferences:
    """The subset of settings the pipeline needs for one event."""
    push_enabled: bool = True
    email_enabled: bool = True
    category_enabled: bool = True

    @property
    def should_send(self) -> bool:
        return self.category_enabled and (self.push_enabled or self.email_enabled)

    @property
    def channels(self) -> str:
        """Comma separated list of enabled channels, e.g. ``push,email``."""
        names = []
        if self.push_enabled:
            names.append("push")
        if self.email_enabled:
            names.append("email")
        return ",".join(names)


def resolve_preferences(
    settings: Optional[NotificationSettings], event_type: NotificationType
) -> EffectivePreferences:
    """Combine a user's settings with the event's category.

    A user without a settings row gets everything enabled.
    """
    if settings is None:
        return EffectivePreferences()
    return EffectivePreferences(
        push_enabled=bool(settings.push_enabled),
        email_enabled=bool(settings.email_enabled),
        category_enabled=bool(getattr(settings, CATEGORY_FLAGS[NotificationType(event_type)])),
    )
