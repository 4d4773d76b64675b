"""Notification pipeline - one scheduled scan-and-deliver run.

Scanner -> event generator -> dedup lookup -> settings filter -> dedup
reservation -> renderer -> dispatcher -> delivery log -> result.
"""
import logging
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings
from ..database import async_session
from ..exceptions import LogWriteError, NotificationError, RenderError
from ..models import User
from ..repositories import (
    SqlCropStore,
    SqlDeviceTokenStore,
    SqlNotificationLogStore,
    SqlTaskStore,
    SqlUserStore,
    UserStore,
)
from ..utils.clock import Clock, Deadline, SystemClock
from ..utils.retry import RetryPolicy
from .dedup import DeduplicationGate, build_deduplication_key
from .delivery_log import DeliveryLogRecorder
from .dispatcher import DeliveryDispatcher
from .email_sender import build_email_provider
from .event_generator import DEFAULT_OVERDUE_THRESHOLD, NotificationEvent, generate_events
from .preferences import resolve_preferences
from .processing_result import ProcessingResult
from .push_sender import build_push_provider
from .renderer import ChannelRenderer
from .scanner import TimeWindowScanner
from .token_lifecycle import TokenLifecycleManager

logger = logging.getLogger(__name__)


class NotificationPipeline:
    """Runs the scheduled notification pipeline against injected collaborators."""

    def __init__(
        self,
        scanner: TimeWindowScanner,
        user_store: UserStore,
        gate: DeduplicationGate,
        renderer: ChannelRenderer,
        dispatcher: DeliveryDispatcher,
        recorder: DeliveryLogRecorder,
        clock: Optional[Clock] = None,
        overdue_threshold: int = DEFAULT_OVERDUE_THRESHOLD,
        run_timeout: Optional[float] = None,
    ):
        self.scanner = scanner
        self.user_store = user_store
        self.gate = gate
        self.renderer = renderer
        self.dispatcher = dispatcher
        self.recorder = recorder
        self.clock = clock or SystemClock()
        self.overdue_threshold = overdue_threshold
        self.run_timeout = run_timeout

    async def run_scheduled_processing(self) -> ProcessingResult:
        """Scan, generate and deliver today's notifications.

        Events are processed one at a time in scan order. When the run
        deadline passes, no further events are started and the partial
        result is returned with ``cancelled`` set.

        Raises:
            ScanError: A time-window query failed; nothing was processed
        """
        result = ProcessingResult(processed_at=self.clock.now())
        deadline = Deadline(self.clock, self.run_timeout)

        scan = await self.scanner.scan()
        events = generate_events(scan, self.overdue_threshold)
        result.record_scan(events)
        logger.info(
            f"Generated {len(events)} notification events "
            f"({result.overdue_task_alerts} overdue, {result.today_task_reminders} due today, "
            f"{result.harvest_reminders} harvest)"
        )

        users: Dict[int, Optional[User]] = {}
        for index, event in enumerate(events):
            if deadline.expired:
                result.cancelled = True
                result.add_error(None, f"run deadline exceeded, {len(events) - index} events not processed")
                logger.warning(f"Run deadline exceeded with {len(events) - index} events left")
                break
            await self._process_event(event, scan.today, users, deadline, result)

        logger.info(
            f"Notification run finished: {result.successful_sends} sent, {result.failed_sends} failed, "
            f"{result.skipped_sends} skipped, {result.deduplicated_count} deduplicated"
        )
        return result

    async def _load_user(self, user_id: int, users: Dict[int, Optional[User]]) -> Optional[User]:
        # Cached per run; a user usually has several events
        if user_id not in users:
            users[user_id] = await self.user_store.get_by_id(user_id)
        return users[user_id]

    async def _process_event(
        self,
        event: NotificationEvent,
        run_date,
        users: Dict[int, Optional[User]],
        deadline: Deadline,
        result: ProcessingResult,
    ) -> None:
        key = build_deduplication_key(event.type, event.user_id, run_date)
        now = self.clock.now()

        try:
            if await self.gate.is_duplicate(key, now):
                logger.debug(f"Skipping duplicate notification {key}")
                result.record_deduplicated()
                return
        except NotificationError as e:
            result.add_error(event, e)

        try:
            user = await self._load_user(event.user_id, users)
        except Exception as e:
            result.record_failure(event, f"user {event.user_id} not found: {e}")
            return
        if user is None:
            result.record_failure(event, f"user {event.user_id} not found")
            return

        preferences = resolve_preferences(user.notification_settings, event.type)
        if not preferences.should_send:
            logger.debug(f"Notification {key} disabled by user settings")
            result.record_skipped()
            return

        reservation = None
        try:
            reservation = await self.gate.reserve(event, key, preferences.channels, now)
            if reservation is None:
                logger.info(f"Notification {key} already claimed by another run")
                result.record_deduplicated()
                return
        except LogWriteError as e:
            logger.error(f"Proceeding without reservation: {e}")
            result.add_error(event, e)

        try:
            rendered = self.renderer.render(
                event,
                push=preferences.push_enabled,
                email=preferences.email_enabled,
            )
        except RenderError as e:
            logger.error(f"Failed to render {key}: {e}")
            result.record_failure(event, e)
            await self.recorder.record(event, key, False, preferences.channels, str(e), self.clock.now(), reservation)
            return

        email_address = user.email or event.user_email
        outcome = await self.dispatcher.dispatch(event, rendered, preferences, email_address, deadline)

        await self.recorder.record(
            event,
            key,
            outcome.sent,
            outcome.channels or preferences.channels,
            outcome.error_message,
            self.clock.now(),
            reservation,
        )

        if outcome.sent:
            result.record_success()
        else:
            result.record_failure(event, outcome.error_message)


def build_pipeline(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession] = async_session,
    clock: Optional[Clock] = None,
) -> NotificationPipeline:
    """Wire a pipeline to the SQL stores and the configured providers."""
    clock = clock or SystemClock(settings.timezone)
    device_store = SqlDeviceTokenStore(session_factory)
    log_store = SqlNotificationLogStore(session_factory)

    scanner = TimeWindowScanner(
        SqlTaskStore(session_factory),
        SqlCropStore(session_factory),
        clock,
        harvest_days_ahead=settings.harvest_days_ahead,
    )
    dispatcher = DeliveryDispatcher(
        push_provider=build_push_provider(settings),
        email_provider=build_email_provider(settings),
        device_store=device_store,
        token_manager=TokenLifecycleManager(device_store),
        policy=RetryPolicy(
            max_retries=settings.notification_max_retries,
            initial_backoff_ms=settings.notification_initial_backoff_ms,
        ),
        clock=clock,
        attempt_timeout=settings.provider_timeout_seconds,
    )
    return NotificationPipeline(
        scanner=scanner,
        user_store=SqlUserStore(session_factory),
        gate=DeduplicationGate(log_store),
        renderer=ChannelRenderer(app_name=settings.ses_from_name or "Home Garden"),
        dispatcher=dispatcher,
        recorder=DeliveryLogRecorder(log_store),
        clock=clock,
        overdue_threshold=settings.overdue_alert_threshold,
        run_timeout=settings.run_timeout_seconds,
    )
