"""Channel renderer - builds push and email payloads from events.

Push payloads use the Amazon SNS message structure: a JSON object keyed by
platform (``default``, ``APNS``, ``APNS_SANDBOX``, ``GCM``) whose values are
JSON-encoded strings.
"""
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, TemplateError

from ..exceptions import RenderError
from .event_generator import NotificationEvent, NotificationType

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates" / "email"

EMAIL_TEMPLATES = {
    NotificationType.TASK_DUE_REMINDER: "task_reminder.html",
    NotificationType.TASK_OVERDUE_ALERT: "overdue_alert.html",
    NotificationType.HARVEST_REMINDER: "harvest_reminder.html",
}

# Keys each event type must carry in its data, with their expected types
REQUIRED_DATA = {
    NotificationType.TASK_DUE_REMINDER: {"task_count": int, "task_ids": list, "task_title": str},
    NotificationType.TASK_OVERDUE_ALERT: {"overdue_count": int, "task_ids": list},
    NotificationType.HARVEST_REMINDER: {"crop_id": int, "crop_name": str, "days_until": int},
}

for _table in (EMAIL_TEMPLATES, REQUIRED_DATA):
    _missing = set(NotificationType) - set(_table)
    if _missing:
        raise RuntimeError(f"notification types missing from render tables: {sorted(t.value for t in _missing)}")


@dataclass
class EmailContent:
    subject: str
    html: str
    text: str


def _validate(event: NotificationEvent) -> None:
    if not isinstance(event.data, dict):
        raise RenderError(f"{event.type.value} event data must be a mapping")

    for key, expected in REQUIRED_DATA[NotificationType(event.type)].items():
        if key not in event.data:
            raise RenderError(f"{event.type.value} event is missing '{key}'")
        value = event.data[key]
        # bool is an int subclass but never a valid count or id
        if isinstance(value, bool) or not isinstance(value, expected):
            raise RenderError(
                f"{event.type.value} event '{key}' must be {expected.__name__}, "
                f"got {type(value).__name__}"
            )

    try:
        json.dumps(event.data)
    except (TypeError, ValueError) as e:
        raise RenderError(f"{event.type.value} event data is not JSON serializable: {e}") from e


def _stringify(data: Dict[str, Any]) -> Dict[str, str]:
    # FCM data payloads only accept string values
    return {key: value if isinstance(value, str) else json.dumps(value) for key, value in data.items()}


class ChannelRenderer:
    """Renders events into SNS push message maps and email bodies."""

    def __init__(self, template_dir: Optional[Path] = None, app_name: str = "Home Garden"):
        self.app_name = app_name
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir or TEMPLATE_DIR)),
            autoescape=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render_push(self, event: NotificationEvent, platform: str) -> Dict[str, str]:
        """Build the SNS message map for one device platform.

        iOS gets ``APNS`` and ``APNS_SANDBOX`` entries, Android and web get a
        ``GCM`` entry. Every map carries a plain-text ``default``.

        Raises:
            RenderError: The event data is malformed or the platform unknown
        """
        _validate(event)
        message = {"default": f"{event.title}: {event.body}"}

        if platform == "ios":
            apns = json.dumps({
                "aps": {
                    "alert": {"title": event.title, "body": event.body},
                    "content-available": 1,
                    "mutable-content": 1,
                },
                "data": event.data,
            })
            message["APNS"] = apns
            message["APNS_SANDBOX"] = apns
        elif platform in ("android", "web"):
            message["GCM"] = json.dumps({
                "notification": {"title": event.title, "body": event.body},
                "data": _stringify(event.data),
                "priority": "high",
            })
        else:
            raise RenderError(f"unsupported push platform: {platform}")

        return message

    def render_email(self, event: NotificationEvent) -> EmailContent:
        """Build subject, HTML and plain-text bodies for an event.

        Raises:
            RenderError: The event data is malformed or the template failed
        """
        _validate(event)
        try:
            template = self.env.get_template(EMAIL_TEMPLATES[NotificationType(event.type)])
            html = template.render(
                title=event.title,
                body=event.body,
                data=event.data,
                app_name=self.app_name,
            )
        except TemplateError as e:
            raise RenderError(f"failed to render {event.type.value} email: {e}") from e

        return EmailContent(
            subject=event.title,
            html=html,
            text=f"{event.title}\n\n{event.body}",
        )

    def render(self, event: NotificationEvent, push: bool = True, email: bool = True) -> "RenderedNotification":
        """Render every payload the enabled channels could need for an event."""
        rendered = RenderedNotification()
        if push:
            rendered.push_messages = {
                "ios": self.render_push(event, "ios"),
                "android": self.render_push(event, "android"),
            }
            rendered.push_messages["web"] = rendered.push_messages["android"]
        if email:
            rendered.email = self.render_email(event)
        return rendered


@dataclass
class RenderedNotification:
    push_messages: Optional[Dict[str, Dict[str, str]]] = None
    email: Optional[EmailContent] = None

    def push_for(self, platform: str) -> Optional[Dict[str, str]]:
        if not self.push_messages:
            return None
        return self.push_messages.get(platform)
