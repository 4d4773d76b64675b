import asyncio
from datetime import date, datetime, timedelta
from types import SimpleNamespace
from typing import AsyncGenerator, Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from garden_notifier.database import Base
from garden_notifier.models import Crop, DeviceToken, NotificationLog, NotificationSettings, Task, User
from garden_notifier.repositories import (
    SqlCropStore,
    SqlDeviceTokenStore,
    SqlNotificationLogStore,
    SqlTaskStore,
    SqlUserStore,
)
from garden_notifier.services.dedup import DeduplicationGate
from garden_notifier.services.delivery_log import DeliveryLogRecorder
from garden_notifier.services.dispatcher import DeliveryDispatcher
from garden_notifier.services.pipeline import NotificationPipeline
from garden_notifier.services.renderer import ChannelRenderer
from garden_notifier.services.scanner import TimeWindowScanner
from garden_notifier.services.token_lifecycle import TokenLifecycleManager
from garden_notifier.utils.retry import RetryPolicy


# Test database setup
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Fixed "now" for every test: Saturday 15 June 2024, 09:00
NOW = datetime(2024, 6, 15, 9, 0, 0)
TODAY = NOW.date()


class FakeClock:
    """Clock whose time only moves when told to. Sleeps are recorded, not waited."""

    def __init__(self, now: datetime = NOW):
        self.current = now
        self._monotonic = 0.0
        self.sleeps: List[float] = []

    def now(self) -> datetime:
        return self.current

    def monotonic(self) -> float:
        return self._monotonic

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)
        await asyncio.sleep(0)

    def advance(self, seconds: float) -> None:
        self._monotonic += seconds
        self.current += timedelta(seconds=seconds)


class _ScriptedFailures:
    """Errors to raise per recipient: a list is consumed one per call, a single error repeats forever."""

    def __init__(self):
        self._failures: Dict[str, object] = {}

    def fail(self, recipient: str, error: Exception, times: Optional[int] = None):
        self._failures[recipient] = error if times is None else [error] * times

    def next_error(self, recipient: str) -> Optional[Exception]:
        scripted = self._failures.get(recipient)
        if scripted is None:
            return None
        if isinstance(scripted, list):
            return scripted.pop(0) if scripted else None
        return scripted


class FakePushProvider(_ScriptedFailures):
    def __init__(self):
        super().__init__()
        self.calls: List[tuple] = []

    async def publish(self, device: DeviceToken, message: Dict[str, str]) -> str:
        self.calls.append((device.token, device.platform, message))
        error = self.next_error(device.token)
        if error is not None:
            raise error
        return f"push-{len(self.calls)}"


class FakeEmailProvider(_ScriptedFailures):
    def __init__(self):
        super().__init__()
        self.calls: List[dict] = []

    async def send(self, to: str, subject: str, html: str, text: str) -> str:
        self.calls.append({"to": to, "subject": subject, "html": html, "text": text})
        error = self.next_error(to)
        if error is not None:
            raise error
        return f"email-{len(self.calls)}"


@pytest_asyncio.fixture
async def test_engine():
    """Create a fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(bind=test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session used by tests to arrange data."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def push_provider() -> FakePushProvider:
    return FakePushProvider()


@pytest.fixture
def email_provider() -> FakeEmailProvider:
    return FakeEmailProvider()


@pytest.fixture
def stores(session_factory):
    return SimpleNamespace(
        users=SqlUserStore(session_factory),
        tasks=SqlTaskStore(session_factory),
        crops=SqlCropStore(session_factory),
        devices=SqlDeviceTokenStore(session_factory),
        logs=SqlNotificationLogStore(session_factory),
    )


@pytest.fixture
def fetch_all(session_factory):
    """Read rows through a fresh session so nothing stale is served from an identity map."""
    async def _fetch(model, *criteria):
        async with session_factory() as session:
            result = await session.execute(select(model).where(*criteria).order_by(model.id))
            return list(result.scalars().all())
    return _fetch


# Test data factories
@pytest.fixture
def make_user(db_session: AsyncSession):
    async def _make(email: str = "gardener@example.com", display_name: str = "Gardener", settings: Optional[dict] = None) -> User:
        user = User(email=email, display_name=display_name, is_active=True)
        db_session.add(user)
        await db_session.flush()
        if settings is not None:
            db_session.add(NotificationSettings(user_id=user.id, **settings))
        await db_session.commit()
        return user
    return _make


@pytest.fixture
def make_task(db_session: AsyncSession):
    async def _make(user: User, title: str = "Water the tomatoes", due: datetime = NOW,
                    priority: str = "medium", status: str = "pending") -> Task:
        task = Task(user_id=user.id, title=title, due_date=due, priority=priority, status=status)
        db_session.add(task)
        await db_session.commit()
        return task
    return _make


@pytest.fixture
def make_crop(db_session: AsyncSession):
    async def _make(user: User, name: str = "Tomato", harvest: Optional[date] = None, status: str = "growing") -> Crop:
        crop = Crop(
            user_id=user.id,
            name=name,
            planted_date=TODAY - timedelta(days=60),
            expected_harvest_date=harvest or TODAY + timedelta(days=3),
            status=status,
        )
        db_session.add(crop)
        await db_session.commit()
        return crop
    return _make


@pytest.fixture
def make_device(db_session: AsyncSession):
    async def _make(user: User, token: str = "android-token-0001", platform: str = "android",
                    is_active: bool = True) -> DeviceToken:
        device = DeviceToken(user_id=user.id, platform=platform, token=token, is_active=is_active)
        db_session.add(device)
        await db_session.commit()
        return device
    return _make


@pytest.fixture
def make_log(db_session: AsyncSession):
    async def _make(user: User, key: str, status: str = "sent", expires_at: Optional[datetime] = None) -> NotificationLog:
        log = NotificationLog(
            user_id=user.id,
            notification_type=key.split(":")[0],
            channel="push,email",
            title="Earlier notification",
            body="Earlier body",
            status=status,
            deduplication_key=key,
            sent_at=NOW - timedelta(hours=1),
            expires_at=expires_at or NOW + timedelta(hours=23),
        )
        db_session.add(log)
        await db_session.commit()
        return log
    return _make


@pytest.fixture
def build_pipeline(stores, clock, push_provider, email_provider):
    """Wire a pipeline to the test database, fake providers and fake clock."""
    def _build(policy: Optional[RetryPolicy] = None, run_timeout: Optional[float] = None,
               renderer: Optional[ChannelRenderer] = None, gate: Optional[DeduplicationGate] = None,
               overdue_threshold: int = 3) -> NotificationPipeline:
        dispatcher = DeliveryDispatcher(
            push_provider=push_provider,
            email_provider=email_provider,
            device_store=stores.devices,
            token_manager=TokenLifecycleManager(stores.devices),
            policy=policy or RetryPolicy(max_retries=3, initial_backoff_ms=1000),
            clock=clock,
            attempt_timeout=5,
        )
        return NotificationPipeline(
            scanner=TimeWindowScanner(stores.tasks, stores.crops, clock, harvest_days_ahead=7),
            user_store=stores.users,
            gate=gate or DeduplicationGate(stores.logs),
            renderer=renderer or ChannelRenderer(),
            dispatcher=dispatcher,
            recorder=DeliveryLogRecorder(stores.logs),
            clock=clock,
            overdue_threshold=overdue_threshold,
            run_timeout=run_timeout,
        )
    return _build
