"""Delivery dispatcher - fans an event out to push tokens and email."""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..models import DeviceToken
from ..repositories import DeviceTokenStore
from ..utils.clock import Clock, Deadline, SystemClock
from ..utils.retry import RetryPolicy, retry_async
from .email_sender import EmailProvider
from .event_generator import NotificationEvent
from .preferences import EffectivePreferences
from .push_sender import PushProvider
from .renderer import RenderedNotification
from .token_lifecycle import TokenLifecycleManager, is_permanent_token_error

logger = logging.getLogger(__name__)


def _push_retryable(error: BaseException) -> bool:
    if is_permanent_token_error(error):
        return False
    return getattr(error, "retryable", True)


@dataclass
class DeliveryOutcome:
    """What happened to one event across every channel."""
    push_attempted: int = 0
    push_succeeded: int = 0
    email_attempted: bool = False
    email_succeeded: bool = False
    deactivated_tokens: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def attempted(self) -> bool:
        return self.push_attempted > 0 or self.email_attempted

    @property
    def sent(self) -> bool:
        return self.push_succeeded > 0 or self.email_succeeded

    @property
    def channels(self) -> str:
        names = []
        if self.push_attempted:
            names.append("push")
        if self.email_attempted:
            names.append("email")
        return ",".join(names)

    @property
    def error_message(self) -> Optional[str]:
        if self.sent:
            return None
        if not self.attempted:
            return "; ".join(
                ["no delivery channel available (no active device tokens or email address)"] + self.errors
            )
        return "; ".join(self.errors) or None


class DeliveryDispatcher:
    """Delivers rendered notifications with retries and per-token isolation."""

    def __init__(
        self,
        push_provider: Optional[PushProvider],
        email_provider: Optional[EmailProvider],
        device_store: DeviceTokenStore,
        token_manager: TokenLifecycleManager,
        policy: Optional[RetryPolicy] = None,
        clock: Optional[Clock] = None,
        attempt_timeout: Optional[float] = None,
    ):
        self.push_provider = push_provider
        self.email_provider = email_provider
        self.device_store = device_store
        self.token_manager = token_manager
        self.policy = policy or RetryPolicy()
        self.clock = clock or SystemClock()
        self.attempt_timeout = attempt_timeout

    async def dispatch(
        self,
        event: NotificationEvent,
        rendered: RenderedNotification,
        preferences: EffectivePreferences,
        email_address: str,
        deadline: Optional[Deadline] = None,
    ) -> DeliveryOutcome:
        """Deliver one event over every enabled channel.

        A failing token or channel never stops the others. The event counts
        as sent when any channel delivered it.
        """
        outcome = DeliveryOutcome()

        if preferences.push_enabled and self.push_provider is not None:
            await self._dispatch_push(event, rendered, outcome, deadline)

        if preferences.email_enabled and email_address and self.email_provider is not None:
            await self._dispatch_email(event, rendered, email_address, outcome, deadline)

        return outcome

    async def _dispatch_push(
        self,
        event: NotificationEvent,
        rendered: RenderedNotification,
        outcome: DeliveryOutcome,
        deadline: Optional[Deadline],
    ) -> None:
        try:
            devices = await self.device_store.get_active_by_user_id(event.user_id)
        except Exception as e:
            logger.error(f"Failed to load device tokens for user {event.user_id}: {e}")
            outcome.errors.append(f"push: failed to load device tokens: {e}")
            return

        devices = [d for d in devices if rendered.push_for(d.platform) is not None]
        if not devices:
            logger.debug(f"No active device tokens for user {event.user_id}")
            return

        outcome.push_attempted = len(devices)
        results = await asyncio.gather(
            *[self._send_to_device(event, device, rendered.push_for(device.platform), deadline) for device in devices]
        )

        for device, error in zip(devices, results):
            if error is None:
                outcome.push_succeeded += 1
                continue
            outcome.errors.append(f"push to {device.platform} token {device.id}: {error}")
            if await self.token_manager.handle_push_failure(device, error):
                outcome.deactivated_tokens += 1

    async def _send_to_device(
        self,
        event: NotificationEvent,
        device: DeviceToken,
        message: dict,
        deadline: Optional[Deadline],
    ) -> Optional[Exception]:
        """Publish to one token. Returns the failure instead of raising it."""
        try:
            await retry_async(
                lambda: self.push_provider.publish(device, message),
                self.policy,
                clock=self.clock,
                deadline=deadline,
                is_retryable=_push_retryable,
                attempt_timeout=self.attempt_timeout,
                description=f"push {event.type.value} to user {event.user_id} ({device.platform})",
            )
        except Exception as e:
            logger.warning(f"Push to {device.token[:16]}... for user {event.user_id} failed: {e}")
            return e
        return None

    async def _dispatch_email(
        self,
        event: NotificationEvent,
        rendered: RenderedNotification,
        email_address: str,
        outcome: DeliveryOutcome,
        deadline: Optional[Deadline],
    ) -> None:
        content = rendered.email
        if content is None:
            return

        outcome.email_attempted = True
        try:
            await retry_async(
                lambda: self.email_provider.send(email_address, content.subject, content.html, content.text),
                self.policy,
                clock=self.clock,
                deadline=deadline,
                attempt_timeout=self.attempt_timeout,
                description=f"email {event.type.value} to user {event.user_id}",
            )
        except Exception as e:
            logger.warning(f"Email to user {event.user_id} failed: {e}")
            outcome.errors.append(f"email: {e}")
            return
        outcome.email_succeeded = True
