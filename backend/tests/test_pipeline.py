from datetime import timedelta

import pytest

from garden_notifier.exceptions import DeliveryError, RenderError, ScanError
from garden_notifier.models import DeviceToken, NotificationLog
from garden_notifier.services.dedup import DeduplicationGate
from garden_notifier.services.renderer import ChannelRenderer

from conftest import NOW, TODAY


async def overdue_user(make_user, make_task, email="gardener@example.com", settings=None, count=3):
    user = await make_user(email=email, settings=settings)
    for i in range(count):
        await make_task(user, title=f"late {i}", due=NOW - timedelta(days=i + 1))
    return user


class TestEndToEnd:
    """Full runs against the database with fake providers."""

    @pytest.mark.asyncio
    async def test_overdue_alert_delivered_on_both_channels(
        self, build_pipeline, push_provider, email_provider, make_user, make_task, make_device, fetch_all
    ):
        user = await overdue_user(make_user, make_task)
        await make_device(user, token="android-token-0001", platform="android")

        result = await build_pipeline().run_scheduled_processing()

        assert result.total_events == 1
        assert result.successful_sends == 1
        assert result.failed_sends == 0
        assert result.skipped_sends == 0
        assert result.deduplicated_count == 0
        assert result.overdue_task_alerts == 1
        assert result.errors == []
        assert len(push_provider.calls) == 1
        assert len(email_provider.calls) == 1

        logs = await fetch_all(NotificationLog)
        assert len(logs) == 1
        assert logs[0].status == "sent"
        assert logs[0].channel == "push,email"
        assert logs[0].deduplication_key == f"task_overdue_alert:{user.id}:{TODAY.isoformat()}"
        assert logs[0].sent_at is not None

    @pytest.mark.asyncio
    async def test_rerun_same_day_is_deduplicated(
        self, build_pipeline, push_provider, email_provider, make_user, make_task, make_device
    ):
        user = await overdue_user(make_user, make_task)
        await make_device(user)
        pipeline = build_pipeline()

        await pipeline.run_scheduled_processing()
        result = await pipeline.run_scheduled_processing()

        assert result.total_events == 1
        assert result.deduplicated_count == 1
        assert result.successful_sends == 0
        assert len(push_provider.calls) == 1
        assert len(email_provider.calls) == 1

    @pytest.mark.asyncio
    async def test_expired_log_allows_delivery_again(
        self, build_pipeline, email_provider, make_user, make_task, make_log, fetch_all
    ):
        user = await overdue_user(make_user, make_task)
        key = f"task_overdue_alert:{user.id}:{TODAY.isoformat()}"
        await make_log(user, key, expires_at=NOW - timedelta(minutes=5))

        result = await build_pipeline().run_scheduled_processing()

        assert result.successful_sends == 1
        assert len(email_provider.calls) == 1
        assert len(await fetch_all(NotificationLog)) == 1

    @pytest.mark.asyncio
    async def test_no_events_means_no_work(self, build_pipeline, push_provider, email_provider):
        result = await build_pipeline().run_scheduled_processing()

        assert result.total_events == 0
        assert result.processed_at == NOW
        assert push_provider.calls == [] and email_provider.calls == []


class TestSettings:
    """Per-user preferences."""

    @pytest.mark.asyncio
    async def test_disabled_category_is_skipped_without_log(
        self, build_pipeline, email_provider, make_user, make_task, fetch_all
    ):
        await overdue_user(make_user, make_task, settings={"task_reminders": False})

        result = await build_pipeline().run_scheduled_processing()

        assert result.skipped_sends == 1
        assert result.successful_sends == 0
        assert email_provider.calls == []
        assert await fetch_all(NotificationLog) == []

    @pytest.mark.asyncio
    async def test_both_channels_off_is_skipped(self, build_pipeline, make_user, make_crop):
        user = await make_user(settings={"push_enabled": False, "email_enabled": False})
        await make_crop(user)

        result = await build_pipeline().run_scheduled_processing()

        assert result.harvest_reminders == 1
        assert result.skipped_sends == 1

    @pytest.mark.asyncio
    async def test_push_only_user_with_no_tokens_fails(
        self, build_pipeline, email_provider, make_user, make_crop, fetch_all
    ):
        user = await make_user(settings={"email_enabled": False})
        await make_crop(user)

        result = await build_pipeline().run_scheduled_processing()

        assert result.failed_sends == 1
        assert email_provider.calls == []
        logs = await fetch_all(NotificationLog)
        assert logs[0].status == "failed"
        assert "no delivery channel" in logs[0].error_message


class TestIsolation:
    """Failures stay with the event, channel or token that caused them."""

    @pytest.mark.asyncio
    async def test_render_error_fails_only_that_event(
        self, build_pipeline, email_provider, make_user, make_task, fetch_all
    ):
        broken = await overdue_user(make_user, make_task, email="broken@example.com")
        healthy = await overdue_user(make_user, make_task, email="healthy@example.com")

        class PickyRenderer(ChannelRenderer):
            def render(self, event, push=True, email=True):
                if event.user_id == broken.id:
                    raise RenderError("task_overdue_alert event is missing 'overdue_count'")
                return super().render(event, push=push, email=email)

        result = await build_pipeline(renderer=PickyRenderer()).run_scheduled_processing()

        assert result.total_events == 2
        assert result.failed_sends == 1
        assert result.successful_sends == 1
        assert [c["to"] for c in email_provider.calls] == ["healthy@example.com"]
        assert any(f"user {broken.id}" in e and "overdue_count" in e for e in result.errors)
        statuses = {log.user_id: log.status for log in await fetch_all(NotificationLog)}
        assert statuses == {broken.id: "failed", healthy.id: "sent"}

    @pytest.mark.asyncio
    async def test_push_failure_with_email_success_counts_as_sent(
        self, build_pipeline, push_provider, clock, make_user, make_task, make_device, fetch_all
    ):
        user = await overdue_user(make_user, make_task)
        await make_device(user, token="ios-token-expired", platform="ios")
        push_provider.fail("ios-token-expired", DeliveryError("bad token", code="BadDeviceToken"))

        result = await build_pipeline().run_scheduled_processing()

        assert result.successful_sends == 1
        assert (await fetch_all(DeviceToken))[0].is_active is False

        # The deactivated token is not tried on the next day's run
        push_provider.calls.clear()
        await make_task(user, title="another", due=NOW - timedelta(days=9))
        clock.current = NOW + timedelta(days=1)
        await build_pipeline().run_scheduled_processing()
        assert push_provider.calls == []

    @pytest.mark.asyncio
    async def test_all_channels_failing_counts_as_failed(
        self, build_pipeline, email_provider, clock, make_user, make_task, fetch_all
    ):
        await overdue_user(make_user, make_task)
        email_provider.fail("gardener@example.com", DeliveryError("smtp unavailable"))

        result = await build_pipeline().run_scheduled_processing()

        assert result.failed_sends == 1
        assert len(email_provider.calls) == 4
        assert clock.sleeps == [1.0, 2.0, 4.0]
        logs = await fetch_all(NotificationLog)
        assert logs[0].status == "failed"
        assert "smtp unavailable" in logs[0].error_message

    @pytest.mark.asyncio
    async def test_scan_failure_aborts_before_processing(self, build_pipeline, email_provider):
        pipeline = build_pipeline()

        class BrokenCropStore:
            async def get_upcoming_harvests(self, today, days_ahead):
                raise RuntimeError("relation crops does not exist")

        pipeline.scanner.crop_store = BrokenCropStore()

        with pytest.raises(ScanError):
            await pipeline.run_scheduled_processing()
        assert email_provider.calls == []


class TestDeduplication:
    """Key sharing and reservation races."""

    @pytest.mark.asyncio
    async def test_only_first_harvest_per_user_per_day_is_sent(
        self, build_pipeline, email_provider, make_user, make_crop
    ):
        user = await make_user()
        await make_crop(user, name="Tomato", harvest=TODAY + timedelta(days=1))
        await make_crop(user, name="Carrot", harvest=TODAY + timedelta(days=4))

        result = await build_pipeline().run_scheduled_processing()

        assert result.total_events == 2
        assert result.successful_sends == 1
        assert result.deduplicated_count == 1
        assert "Tomato" in email_provider.calls[0]["html"]

    @pytest.mark.asyncio
    async def test_lost_reservation_counts_as_deduplicated(
        self, build_pipeline, stores, email_provider, make_user, make_task, make_log
    ):
        class LookupMisses(DeduplicationGate):
            async def is_duplicate(self, key, now):
                return False

        user = await overdue_user(make_user, make_task)
        await make_log(user, f"task_overdue_alert:{user.id}:{TODAY.isoformat()}", status="pending")

        result = await build_pipeline(gate=LookupMisses(stores.logs)).run_scheduled_processing()

        assert result.deduplicated_count == 1
        assert email_provider.calls == []


class TestDeadline:
    """Run deadline handling."""

    @pytest.mark.asyncio
    async def test_deadline_stops_before_next_event(
        self, build_pipeline, clock, email_provider, make_user, make_task
    ):
        await overdue_user(make_user, make_task, email="first@example.com")
        await overdue_user(make_user, make_task, email="second@example.com")
        send = email_provider.send

        async def slow_send(to, subject, html, text):
            clock.advance(2)
            return await send(to, subject, html, text)

        email_provider.send = slow_send

        result = await build_pipeline(run_timeout=1.5).run_scheduled_processing()

        assert result.cancelled is True
        assert result.successful_sends == 1
        assert [c["to"] for c in email_provider.calls] == ["first@example.com"]
        assert any("deadline" in e for e in result.errors)
